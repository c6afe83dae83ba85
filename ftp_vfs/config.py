import configparser
from dataclasses import dataclass, field
from pathlib import Path

from .params import ConnectParams, parse_bool

# CLI argument name -> [session] attribute name
CLI_SESSION_ARGS = {
    "url": "server_url",
    "protocol": "protocol",
    "host": "host",
    "port": "port",
    "username": "username",
    "password": "password",
    "fingerprint": "fingerprint",
    "accept_any": "accept_any",
    "key_file": "private_key_path",
    "key_passphrase": "private_key_passphrase",
    "timeout_ms": "timeout_ms",
    "secure": "secure",
    "root_path": "root_path",
}


@dataclass
class FileSystemConfig:
    name: str = "ftp"
    bypass_readonly: bool = False


@dataclass
class LogConfig:
    level: str = "INFO"
    file: str | None = None
    console: bool = True


@dataclass
class AppConfig:
    session: ConnectParams
    filesystem: FileSystemConfig = field(default_factory=FileSystemConfig)
    logging: LogConfig = field(default_factory=LogConfig)


def load_config(config_path: str | None = None, **cli_args) -> AppConfig:
    """
    Load configuration from an INI file and/or CLI arguments.
    CLI arguments take precedence over config file.

    Args:
        config_path: Path to the INI configuration file.
        **cli_args: Key-value pairs from command line arguments; None values are ignored.

    Returns:
        AppConfig: The populated configuration object.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ConfigurationError: If a value cannot be parsed (bad URL, non-integer port, ...).
    """
    session_attrs: dict[str, str] = {}
    raw_settings: dict[str, str] = {}
    fs_config = FileSystemConfig()
    log_config = LogConfig()

    # Parse INI file if provided
    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        parser = configparser.ConfigParser(interpolation=None)
        # Raw settings are forwarded verbatim, keep their case
        parser.optionxform = str
        parser.read(config_file, encoding="utf-8")

        if parser.has_section("session"):
            session_attrs.update(parser["session"])

        if parser.has_section("raw_settings"):
            raw_settings.update(parser["raw_settings"])

        # Load [filesystem] section
        if parser.has_section("filesystem"):
            fs_section = parser["filesystem"]
            if fs_section.get("name"):
                fs_config.name = fs_section.get("name")
            if fs_section.get("bypass_readonly"):
                fs_config.bypass_readonly = parse_bool(
                    "bypass_readonly", fs_section.get("bypass_readonly")
                )

        # Load [logging] section
        if parser.has_section("logging"):
            log_section = parser["logging"]
            if log_section.get("level"):
                log_config.level = log_section.get("level")
            if log_section.get("file"):
                log_config.file = log_section.get("file")
            if log_section.get("console"):
                log_config.console = parse_bool("console", log_section.get("console"))

    # Override with CLI arguments (cli_args take precedence)
    for arg_name, attr_name in CLI_SESSION_ARGS.items():
        if cli_args.get(arg_name) is not None:
            session_attrs[attr_name] = cli_args[arg_name]
    if cli_args.get("bypass_readonly") is not None:
        fs_config.bypass_readonly = bool(cli_args["bypass_readonly"])
    if cli_args.get("verbose"):
        log_config.level = "DEBUG"
        log_config.console = True

    return AppConfig(
        session=ConnectParams.from_config(session_attrs, raw_settings),
        filesystem=fs_config,
        logging=log_config,
    )
