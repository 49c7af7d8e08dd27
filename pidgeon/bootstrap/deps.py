import json
from functools import lru_cache

from pydantic import ValidationError

from pidgeon.bootstrap.config.settings import PidgeonConfig
from pidgeon.core.helpers.spawn import TaskSpawner
from pidgeon.core.ports.presenter import Presenter
from pidgeon.core.ports.serializer import Serializer
from pidgeon.core.session.protocol import SessionProtocol
from pidgeon.core.transport.codec import FrameCodec
from pidgeon.infra.json_serializer import JsonSerializer
from pidgeon.infra.msgpack_serializer import MsgPackSerializer

SERIALIZERS: dict[str, type[Serializer]] = {
    "json": JsonSerializer,
    "msgpack": MsgPackSerializer,
}


@lru_cache
def get_config() -> PidgeonConfig:
    try:
        return PidgeonConfig()
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}")
        raise SystemExit("\n".join(msg))


def get_serializer(name: str) -> Serializer:
    try:
        return SERIALIZERS[name]()
    except KeyError:
        raise ValueError(f"Unknown serializer '{name}'") from None


def get_codec(config: PidgeonConfig) -> FrameCodec:
    return FrameCodec(
        serializer=get_serializer(config.client.serializer),
        max_frame_size=config.client.max_frame_size,
    )


def build_session(
    config: PidgeonConfig,
    presenter: Presenter,
    spawner: TaskSpawner | None = None,
) -> SessionProtocol:
    return SessionProtocol(
        config=config.get_connection_config(),
        codec=get_codec(config),
        presenter=presenter,
        spawner=spawner or TaskSpawner(),
        session=config.get_session_config(),
        backoff=config.get_backoff(),
    )
