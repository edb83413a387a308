"""Record types shared by every component."""

from .model import ManagedServer as ManagedServer
from .model import NetworkType as NetworkType
from .model import Project as Project
from .model import ServerKind as ServerKind
from .model import instance_name as instance_name
from .model import instance_tag as instance_tag
