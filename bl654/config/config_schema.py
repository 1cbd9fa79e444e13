"""JSON Schema validation for BL654 interface configuration."""

from typing import List, Tuple, Dict, Any
import copy

import jsonschema
from jsonschema import Draft7Validator


def _timeout_property(description: str) -> Dict[str, Any]:
    return {
        "type": "number",
        "description": description,
        "exclusiveMinimum": 0,
        "maximum": 600
    }


class ConfigSchema:
    """Configuration schema validator using JSON Schema Draft 7.

    Example:
        >>> is_valid, errors = ConfigSchema.validate_config(config_dict)
        >>> if not is_valid:
        >>>     for error in errors:
        >>>         print(error)
    """

    # Rates the module's UART accepts (S-register 302)
    VALID_BAUD_RATES = [1200, 2400, 4800, 9600, 19200, 38400, 57600, 115200,
                        230400, 460800, 921600, 1000000]

    @staticmethod
    def get_schema() -> Dict[str, Any]:
        """Get JSON Schema Draft 7 for configuration validation."""
        return {
            "$schema": "http://json-schema.org/draft-07/schema#",
            "title": "BL654 Interface Configuration",
            "type": "object",
            "properties": {
                "serial": {
                    "type": "object",
                    "description": "Serial port settings",
                    "properties": {
                        "port": {
                            "type": ["string", "null"],
                            "description": "Serial device path",
                            "minLength": 1
                        },
                        "baud_rate": {
                            "type": "integer",
                            "description": "UART baud rate",
                            "enum": ConfigSchema.VALID_BAUD_RATES
                        },
                        "rtscts": {
                            "type": "boolean",
                            "description": "Hardware flow control"
                        },
                        "line_terminator": {
                            "type": "string",
                            "description": "Line terminator",
                            "enum": ["\r", "\n", "\r\n"]
                        },
                        "write_timeout": _timeout_property("Write timeout in seconds")
                    },
                    "additionalProperties": False
                },
                "timeouts": {
                    "type": "object",
                    "description": "Response timeouts in seconds",
                    "properties": {
                        "at_check": _timeout_property("AT check timeout"),
                        "command": _timeout_property("Default OK timeout"),
                        "connect": _timeout_property("Connect response timeout"),
                        "gatt_line": _timeout_property("Per-line GATT table timeout"),
                        "read": _timeout_property("Characteristic read timeout"),
                        "write": _timeout_property("Characteristic write timeout"),
                        "end_scan": _timeout_property("End scan timeout"),
                        "scan_grace": _timeout_property("Post-scan AT polling window")
                    },
                    "additionalProperties": False
                },
                "reader": {
                    "type": "object",
                    "description": "Background reader settings",
                    "properties": {
                        "fifo_capacity": {
                            "type": "integer",
                            "description": "Maximum buffered lines",
                            "minimum": 1,
                            "maximum": 1048576
                        },
                        "thread_name": {
                            "type": "string",
                            "minLength": 1
                        },
                        "join_timeout": _timeout_property("Reader join timeout")
                    },
                    "additionalProperties": False
                },
                "logging": {
                    "type": "object",
                    "description": "Traffic logging settings",
                    "properties": {
                        "level": {
                            "type": "string",
                            "enum": ["DEBUG", "INFO", "WARNING", "ERROR"]
                        },
                        "trace_traffic": {"type": "boolean"},
                        "log_to_console": {"type": "boolean"},
                        "log_to_file": {"type": "boolean"},
                        "log_file_path": {
                            "type": ["string", "null"],
                            "minLength": 1
                        },
                        "max_file_size_mb": {
                            "type": "integer",
                            "minimum": 1,
                            "maximum": 1000
                        },
                        "backup_count": {
                            "type": "integer",
                            "minimum": 0,
                            "maximum": 100
                        }
                    },
                    "additionalProperties": False
                }
            },
            "additionalProperties": False
        }

    @staticmethod
    def validate_config(config: Dict[str, Any], strict: bool = True) -> Tuple[bool, List[str]]:
        """Validate configuration dictionary against schema.

        Args:
            config: Configuration dictionary to validate.
            strict: If True, reject unknown fields.

        Returns:
            Tuple of (is_valid, error_messages).

        Example:
            >>> ConfigSchema.validate_config({"serial": {"baud_rate": 12345}})
            (False, ["Section 'serial', field 'baud_rate': Expected one of [...], got 12345. ..."])
        """
        schema = ConfigSchema.get_schema()
        if not strict:
            schema = ConfigSchema._make_permissive(schema)

        validator = Draft7Validator(schema)
        errors = [ConfigSchema._format_error(error)
                  for error in sorted(validator.iter_errors(config), key=lambda e: list(e.path))]
        errors.extend(ConfigSchema._custom_validation(config))

        return len(errors) == 0, errors

    @staticmethod
    def _make_permissive(schema: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``schema`` with every ``additionalProperties`` removed."""
        permissive_schema = copy.deepcopy(schema)

        def remove_additional_properties(obj):
            if isinstance(obj, dict):
                obj.pop("additionalProperties", None)
                for value in obj.values():
                    remove_additional_properties(value)

        remove_additional_properties(permissive_schema)
        return permissive_schema

    @staticmethod
    def _format_error(error: jsonschema.exceptions.ValidationError) -> str:
        """Format validation error with field, section and expected value."""
        path_parts = list(error.path)
        if len(path_parts) == 0:
            section = "root"
            field = "configuration"
        elif len(path_parts) == 1:
            section = path_parts[0]
            field = "section"
        else:
            section = path_parts[0]
            field = ".".join(str(p) for p in path_parts[1:])

        if error.validator == "type":
            return (f"Section '{section}', field '{field}': Expected type {error.validator_value}, "
                    f"got {type(error.instance).__name__} (value: {error.instance!r})")

        elif error.validator == "enum":
            return (f"Section '{section}', field '{field}': Expected one of {error.validator_value}, "
                    f"got {error.instance!r}. Example: {field}: {error.validator_value[0]!r}")

        elif error.validator in ("minimum", "exclusiveMinimum"):
            return (f"Section '{section}', field '{field}': Value must be "
                    f"{'>' if error.validator == 'exclusiveMinimum' else '>='} "
                    f"{error.validator_value}, got {error.instance}")

        elif error.validator == "maximum":
            return (f"Section '{section}', field '{field}': Value must be <= "
                    f"{error.validator_value}, got {error.instance}")

        elif error.validator == "additionalProperties":
            extra_props = set(error.instance.keys()) - set(error.schema.get('properties', {}).keys())
            return (f"Section '{section}': Unknown fields {sorted(extra_props)} not allowed. "
                    f"Remove unknown fields or use permissive validation mode.")

        return f"Section '{section}', field '{field}': {error.message}"

    @staticmethod
    def _custom_validation(config: Dict[str, Any]) -> List[str]:
        """Cross-field checks the schema cannot express."""
        errors = []

        logging_section = config.get("logging")
        if isinstance(logging_section, dict):
            if logging_section.get("log_to_file") and not logging_section.get("log_file_path"):
                errors.append(
                    "Section 'logging', field 'log_file_path': Required when log_to_file is true. "
                    "Example: log_file_path: '~/.bl654/logs/traffic.log'"
                )

        return errors
