"""Terraform-style provisioning for Pure Fusion storage resources."""

__version__ = "0.1.0"
