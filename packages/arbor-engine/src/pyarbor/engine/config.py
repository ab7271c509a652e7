import copy
import logging
from pathlib import Path
from typing import Any, Dict

import yaml
from pyarbor.common.messaging import bus

logger = logging.getLogger(__name__)

ARBOR_DIR_NAME = ".arbor"

# 默认配置，为所有可能的设置提供一个基础
DEFAULTS = {
    "storage": {
        "type": "sqlite",  # 目前仅支持 "sqlite"
    },
    "matchers": {
        # lookup_values.match 列的长度上限
        "max_length": 255,
    },
    "cascade": {
        "strategy": "prefix",  # 可选: "prefix", "scan"
    },
}


class ConfigManager:
    def __init__(self, work_dir: Path):
        self.config_path = work_dir.resolve() / ARBOR_DIR_NAME / "config.yml"
        self.user_config: Dict[str, Any] = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
                if config_data is None:
                    return {}
                if not isinstance(config_data, dict):
                    bus.warning("engine.config.warning.invalidFormat", path=self.config_path)
                    return {}
                return config_data
        except yaml.YAMLError as e:
            bus.error("engine.config.error.parseFailed", path=self.config_path, error=str(e))
            return {}
        except OSError as e:
            bus.error("engine.config.error.readFailed", error=str(e))
            return {}

    def get(self, key: str, fallback: Any = None) -> Any:
        user_val = self._get_nested(self.user_config, key)
        if user_val is not None:
            return user_val

        default_val = self._get_nested(DEFAULTS, key)
        if default_val is not None:
            return default_val

        return fallback

    def _get_nested(self, data: Dict, key: str) -> Any:
        current = data
        for k in key.split("."):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return None
        return current

    def set(self, key: str, value: Any):
        keys = key.split(".")
        d = self.user_config
        for k in keys[:-1]:
            d = d.setdefault(k, {})
        d[keys[-1]] = value
        logger.debug(f"配置已更新: {key} = {value}")

    def effective(self) -> Dict[str, Any]:
        merged = copy.deepcopy(DEFAULTS)
        _deep_merge(merged, self.user_config)
        return merged

    def save(self):
        try:
            self.config_path.parent.mkdir(exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                yaml.dump(self.user_config, f, default_flow_style=False, allow_unicode=True)
            bus.success("engine.config.success.saved", path=self.config_path)
        except OSError as e:
            bus.error("engine.config.error.saveFailed", error=str(e))
            raise


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]):
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
