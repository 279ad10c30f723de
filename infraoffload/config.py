"""Manager configuration read from a YAML file, with defaults and env overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

# Extensions tried, in order, after the configuration name.
_SUPPORTED_EXTS = (
    "json", "toml", "yaml", "yml", "properties", "props", "prop",
    "hcl", "tfvars", "dotenv", "env", "ini",
)

_DEFAULTS: dict[str, dict[str, Any]] = {
    "infrap4dgrpcserver": {"addr": "localhost:9559", "conn": "insecure"},
    "infrap4dgnmiserver": {"addr": "localhost:9339", "conn": "insecure"},
    "inframanager": {"conn": "mtls"},
}


@dataclass
class ServerConf:
    """Where and how to reach an infrap4d server."""

    addr: str = ""
    conn: str = ""
    client_cert: str = ""
    client_key: str = ""
    ca_cert: str = ""


@dataclass
class ManagerConf:
    """How the manager's own server accepts connections."""

    conn: str = ""
    server_cert: str = ""
    server_key: str = ""
    ca_cert: str = ""
    cipher_suites: list[str] = field(default_factory=list)


@dataclass
class Configuration:
    infrap4d_grpc_server: ServerConf = field(default_factory=ServerConf)
    infrap4d_gnmi_server: ServerConf = field(default_factory=ServerConf)
    infra_manager: ManagerConf = field(default_factory=ManagerConf)
    node_ip: str = ""
    log_level: str = ""
    p4_info_path: str = ""
    p4_bin_path: str = ""
    device_id: int = 0


class _DecodeError(ValueError):
    pass


def _find_config(name: str, search_dir: Path) -> Path | None:
    for ext in _SUPPORTED_EXTS:
        candidate = search_dir / f"{name}.{ext}"
        if candidate.is_file():
            return candidate
    bare = search_dir / name
    return bare if bare.is_file() else None


def _lower_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


def _deep_merge(base: Mapping[str, Any], over: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in over.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env(tree: dict[str, Any], prefix: tuple[str, ...] = ()) -> None:
    """Replace each known leaf with the environment variable named after its path."""
    for key, value in tree.items():
        path = prefix + (key,)
        if isinstance(value, dict):
            _apply_env(value, path)
            continue
        env_name = ".".join(path).upper()
        if env_name in os.environ:
            tree[key] = os.environ[env_name]


def _as_str(value: Any, name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise _DecodeError(f"'{name}' expected a string, got {type(value).__name__}")


def _as_uint(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        number = int(value)
    elif isinstance(value, int):
        number = value
    elif isinstance(value, float):
        number = int(value)
    elif isinstance(value, str):
        text = value.strip() or "0"
        try:
            number = int(text, 0)
        except ValueError:
            raise _DecodeError(f"cannot parse '{name}' as uint: {value!r}") from None
    else:
        raise _DecodeError(f"'{name}' expected an unsigned integer, got {type(value).__name__}")
    if not 0 <= number < 1 << 64:
        raise _DecodeError(f"cannot parse '{name}', {number} overflows uint64")
    return number


def _as_str_list(value: Any, name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split(",") if value else []
    if isinstance(value, (list, tuple)):
        return [_as_str(item, f"{name}[{i}]") for i, item in enumerate(value)]
    return [_as_str(value, name)]


def _section(value: Any, name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise _DecodeError(f"'{name}' expected a map, got {type(value).__name__}")
    return value


def _decode_server(value: Any, name: str) -> ServerConf:
    data = _section(value, name)
    return ServerConf(
        addr=_as_str(data.get("addr"), f"{name}.addr"),
        conn=_as_str(data.get("conn"), f"{name}.conn"),
        client_cert=_as_str(data.get("client-cert"), f"{name}.client-cert"),
        client_key=_as_str(data.get("client-key"), f"{name}.client-key"),
        ca_cert=_as_str(data.get("ca-cert"), f"{name}.ca-cert"),
    )


def _decode_manager(value: Any, name: str) -> ManagerConf:
    data = _section(value, name)
    return ManagerConf(
        conn=_as_str(data.get("conn"), f"{name}.conn"),
        server_cert=_as_str(data.get("server-cert"), f"{name}.server-cert"),
        server_key=_as_str(data.get("server-key"), f"{name}.server-key"),
        ca_cert=_as_str(data.get("ca-cert"), f"{name}.ca-cert"),
        cipher_suites=_as_str_list(data.get("ciphersuites"), f"{name}.ciphersuites"),
    )


def _decode(tree: Mapping[str, Any]) -> tuple[Configuration, list[str]]:
    conf = Configuration()
    errors: list[str] = []
    fields = (
        ("infrap4d_grpc_server", "infrap4dgrpcserver", _decode_server),
        ("infrap4d_gnmi_server", "infrap4dgnmiserver", _decode_server),
        ("infra_manager", "inframanager", _decode_manager),
        ("node_ip", "nodeip", _as_str),
        ("log_level", "loglevel", _as_str),
        ("p4_info_path", "p4infopath", _as_str),
        ("p4_bin_path", "p4binpath", _as_str),
        ("device_id", "deviceid", _as_uint),
    )
    for attr, key, decode in fields:
        if key not in tree:
            continue
        try:
            setattr(conf, attr, decode(tree[key], key))
        except _DecodeError as exc:
            errors.append(str(exc))
    return conf, errors


def _lookup(tree: Mapping[str, Any], path: str) -> str:
    env_name = path.upper()
    if env_name in os.environ:
        return os.environ[env_name]
    value: Any = tree
    for part in path.lower().split("."):
        if not isinstance(value, Mapping) or part not in value:
            return ""
        value = value[part]
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def read_config(file_name: str, search_dir: str | os.PathLike = ".") -> Configuration:
    """Read ``file_name`` (without extension) from ``search_dir`` as YAML.

    Keys are matched case-insensitively and laid over the built-in defaults;
    an environment variable named after a key's upper-cased dotted path
    overrides it. Problems with the file are reported and the defaults kept.
    """
    directory = Path(search_dir)
    loaded: dict[str, Any] = {}
    path = _find_config(file_name, directory)
    if path is None:
        print(
            f'Error reading config file, Config File "{file_name}" '
            f'Not Found in "[{directory.resolve()}]"'
        )
    else:
        try:
            raw = yaml.safe_load(path.read_text())
            if raw is None:
                raw = {}
            if not isinstance(raw, Mapping):
                raise ValueError("top level is not a mapping")
            loaded = _lower_keys(raw)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            print(f"Error reading config file, {exc}")

    tree = _deep_merge(_lower_keys(_DEFAULTS), loaded)
    _apply_env(tree)

    conf, errors = _decode(tree)
    if errors:
        print(f"Unable to decode into struct, {'; '.join(errors)}")

    print("Infrap4d GRPC Server Addr:\t", _lookup(tree, "Infrap4dGrpcServer.Addr"))
    print("Infrap4d GRPC Server Con:\t", _lookup(tree, "Infrap4dGrpcServer.Conn"))
    print("Infrap4dGNMI Server Addr:\t", _lookup(tree, "Infrap4dGnmiServer.Addr"))
    print("Infrap4dGNMI Server Con:\t", _lookup(tree, "Infrap4dGnmiServer.Conn"))
    print("InfraManager Con:\t", _lookup(tree, "InfraManager.Conn"))
    print("Log Level is set to :\t", _lookup(tree, "LogLevel"))
    return conf