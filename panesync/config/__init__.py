"""Client configuration.

    from panesync.config import load_client_config
    config = load_client_config()
"""

from panesync.config.loader import load_client_config, load_config
from panesync.config.schema import ClientConfig

__all__ = ["ClientConfig", "load_client_config", "load_config"]
