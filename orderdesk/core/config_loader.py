from pathlib import Path
from typing import Any, Dict, Optional

from orderdesk.core.logging_utils import get_module_logger

logger = get_module_logger(__name__)


class ConfigLoader:
    """Reader/writer for ``key = value`` module config files.

    Values are coerced to the type of the matching entry in ``defaults``;
    keys without a default are parsed heuristically (bool, int, float, str).
    """

    @staticmethod
    def load(
        config_path: Path,
        defaults: Optional[Dict[str, Any]] = None,
        strict: bool = False
    ) -> Dict[str, Any]:
        config = defaults.copy() if defaults else {}
        config_path = Path(config_path)

        if not config_path.exists():
            if defaults:
                logger.debug("Config file not found at %s, using defaults", config_path)
            else:
                logger.warning("Config file not found at %s and no defaults provided", config_path)
            return config

        logger.debug("Loading config from: %s", config_path)

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                for line_num, line in enumerate(f, 1):
                    line = line.strip()

                    if not line or line.startswith('#'):
                        continue

                    if '=' not in line:
                        logger.warning(
                            "Invalid config line %d (missing '='): %s",
                            line_num, line
                        )
                        continue

                    key, value = line.split('=', 1)
                    key = key.strip()
                    value = value.strip()

                    if '#' in value:
                        value = value.split('#', 1)[0].strip()

                    if strict and defaults is not None and key not in defaults:
                        logger.warning(
                            "Unknown config key '%s' (line %d) - ignored in strict mode",
                            key, line_num
                        )
                        continue

                    if defaults and key in defaults and defaults[key] is not None:
                        config[key] = ConfigLoader._parse_value_with_type(
                            value, type(defaults[key]), defaults[key]
                        )
                    else:
                        config[key] = ConfigLoader._parse_value(value)

            logger.info("Loaded config from %s (%d values)", config_path, len(config))
            return config

        except OSError as e:
            logger.error("Failed to load config file: %s", e)
            return config

    @staticmethod
    def _parse_value(value: str) -> Any:
        value_lower = value.lower()
        if value_lower in ('true', 'false', 'yes', 'no', 'on', 'off'):
            return value_lower in ('true', 'yes', 'on')

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    @staticmethod
    def _parse_value_with_type(value: str, target_type: type, default: Any = None) -> Any:
        if target_type is bool:
            return value.lower() in ('true', 'yes', 'on', '1')

        if target_type is int:
            try:
                return int(value, 0)  # decimal, hex, octal, binary
            except ValueError:
                logger.warning("Failed to parse '%s' as int, using default", value)
                return default if default is not None else 0

        if target_type is float:
            try:
                return float(value)
            except ValueError:
                logger.warning("Failed to parse '%s' as float, using default", value)
                return default if default is not None else 0.0

        return value

    @staticmethod
    def update_config_values(config_path: Path, updates: Dict[str, Any]) -> bool:
        """Rewrite ``updates`` into ``config_path`` keeping comments and unrelated lines."""
        config_path = Path(config_path)
        try:
            lines = config_path.read_text(encoding='utf-8').splitlines() if config_path.exists() else []
        except OSError as e:
            logger.error("Failed to read config file %s: %s", config_path, e)
            return False

        pending = dict(updates)
        output = []
        for line in lines:
            stripped = line.strip()
            if stripped and not stripped.startswith('#') and '=' in stripped:
                key = stripped.split('=', 1)[0].strip()
                if key in pending:
                    output.append(f"{key} = {ConfigLoader._format_config_value(pending.pop(key))}")
                    continue
            output.append(line)

        for key, value in pending.items():
            output.append(f"{key} = {ConfigLoader._format_config_value(value)}")

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text("\n".join(output) + "\n", encoding='utf-8')
        except OSError as e:
            logger.error("Failed to write config file %s: %s", config_path, e)
            return False

        logger.debug("Updated %d config values in %s", len(updates), config_path)
        return True

    @staticmethod
    def _format_config_value(value: Any) -> str:
        if isinstance(value, bool):
            return 'true' if value else 'false'
        return str(value)
