"""HTTP trigger and status endpoints."""
