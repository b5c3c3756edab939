"""Wire encoders for the supported monitoring backends."""
