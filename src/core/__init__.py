"""Core domain package for warden.

Core contains session lifecycle, credential bootstrap, delete recovery,
status engagement and membership logic without any engine or storage-specific
code, keeping the business logic portable.
"""
