from oms_mirror.config.loader import YamlConfigLoader

__all__ = ["YamlConfigLoader"]
