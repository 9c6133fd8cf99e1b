"""Contract IR and type descriptors."""
