"""Playbook-driven configuration and certificate deployment."""

from .certificate import CertificateProvisioner
from .configuration import ConfigurationDeployer

__all__ = ["CertificateProvisioner", "ConfigurationDeployer"]
