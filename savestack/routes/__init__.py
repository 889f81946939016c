"""HTTP routes for the SaveStack capability service."""
