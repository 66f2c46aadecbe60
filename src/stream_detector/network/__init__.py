"""Interception surfaces and the interceptors that observe them."""
