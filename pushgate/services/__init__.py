from pushgate.services.providers import ProviderSettings, load_provider_settings
from pushgate.services.storage import MemoryProvider, S3Provider, create_provider

__all__ = ["MemoryProvider", "ProviderSettings", "S3Provider", "create_provider", "load_provider_settings"]
