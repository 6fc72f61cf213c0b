"""CreatorHub payment gateway."""
