from .provider import CloudInstance, CloudInstanceClient, InstanceSpec

__all__ = ["CloudInstance", "CloudInstanceClient", "InstanceSpec"]
