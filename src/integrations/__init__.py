"""External systems: Cloudinary media hosting and git persistence."""
