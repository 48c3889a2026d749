"""Push token registration store and its HTTP adapter."""
