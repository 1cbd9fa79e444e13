"""Default configuration values for zero-config operation."""

from bl654.config.config_models import (
    Config,
    SerialConfig,
    TimeoutConfig,
    ReaderConfig,
    LoggingConfig,
    LogLevel
)


def get_default_config() -> Config:
    """Get default configuration.

    Default Values:
        - Serial: 115200 baud, RTS/CTS, CR terminated lines (module factory UART setup)
        - Timeouts: 250ms AT check, 1s commands, 5s connect, 1.5s per GATT table line
        - Reader: 1024 line FIFO
        - Logging: INFO level, traffic tracing off
    """
    return Config(
        serial=SerialConfig(
            port=None,  # Must be supplied by file, env or caller
            baud_rate=115200,
            rtscts=True,
            line_terminator="\r",
            write_timeout=1.0
        ),
        timeouts=TimeoutConfig(
            at_check=0.25,
            command=1.0,
            connect=5.0,
            gatt_line=1.5,
            read=0.5,
            write=1.0,
            end_scan=0.3,
            scan_grace=5.0  # Extra time after scan timeout for the module to answer AT again
        ),
        reader=ReaderConfig(
            fifo_capacity=1024,
            thread_name="BL654 Read Thread",
            join_timeout=0.5
        ),
        logging=LoggingConfig(
            level=LogLevel.INFO,
            trace_traffic=False,
            log_to_console=True,
            log_to_file=False,
            log_file_path=None,
            max_file_size_mb=10,
            backup_count=5
        )
    )
