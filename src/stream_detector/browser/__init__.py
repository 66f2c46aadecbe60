"""Ways of attaching the detector to a page: static fetch or a live browser."""
