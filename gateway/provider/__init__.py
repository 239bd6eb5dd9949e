from .kinds import PROVIDER_CAPABILITIES, ProviderCapability, ProviderKind, get_capability

__all__ = ["PROVIDER_CAPABILITIES", "ProviderCapability", "ProviderKind", "get_capability"]
