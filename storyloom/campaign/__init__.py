"""Responder selection and campaign turns."""
