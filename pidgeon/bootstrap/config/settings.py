from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, YamlConfigSettingsSource

from pidgeon.bootstrap.config.loader import get_configfile
from pidgeon.core.models.config import ConnectionConfig, SessionConfig
from pidgeon.core.throttling.backoff import ExponentialBackoff


class PeerSettings(BaseModel):
    host: Annotated[
        str,
        Field(
            description="Address of the code-execution peer.",
            default="127.0.0.1"
        )
    ]

    port: Annotated[
        int,
        Field(
            description="TCP port the peer listens on.",
            default=6666,
            gt=0,
            lt=65536
        )
    ]


class ClientSettings(BaseModel):
    connect_timeout: Annotated[
        float,
        Field(
            description="Seconds allowed to establish the session connection.",
            default=5.0,
            gt=0
        )
    ]

    reply_timeout: Annotated[
        float,
        Field(
            description=(
                "Seconds the command line and the interactive shell wait for the\n"
                "result of a snippet before reporting that nothing came back."
            ),
            default=30.0,
            gt=0
        )
    ]

    check_timeout: Annotated[
        float,
        Field(
            description="Seconds a liveness probe may take, connect included.",
            default=2.0,
            gt=0
        )
    ]

    max_frame_size: Annotated[
        int,
        Field(
            description=(
                "Largest payload a single frame may carry.\n"
                "A peer announcing a bigger frame is considered out of sync and "
                "the connection is closed."
            ),
            default=4 * 1024 * 1024,
            gt=0
        )
    ]

    read_size: Annotated[
        int,
        Field(
            description="Maximum number of bytes requested per socket read.",
            default=64 * 1024,
            gt=0
        )
    ]

    notify_threshold: Annotated[
        int,
        Field(
            description=(
                "Results shorter than this many characters are also shown as a "
                "notification, besides being attached to their source location."
            ),
            default=80,
            ge=0
        )
    ]

    serializer: Annotated[
        Literal["json", "msgpack"],
        Field(
            description="Frame body encoding spoken by the peer.",
            default="json"
        )
    ]


class ReconnectSettings(BaseModel):
    enabled: Annotated[
        bool,
        Field(
            description="Reconnect automatically when the session connection drops.",
            default=True
        )
    ]

    initial: Annotated[
        float,
        Field(
            description="Delay in seconds before the first reconnect attempt.",
            default=0.5,
            ge=0
        )
    ]

    maximum: Annotated[
        float,
        Field(
            description="Upper bound of the delay between two attempts.",
            default=30.0,
            ge=0
        )
    ]

    factor: Annotated[
        float,
        Field(
            description="Growth of the delay after each failed attempt.",
            default=2.0,
            ge=1
        )
    ]

    jitter: Annotated[
        float,
        Field(
            description="Largest random amount of seconds added to each delay.",
            default=0.5,
            ge=0
        )
    ]

    max_retries: Annotated[
        int,
        Field(
            description="Attempts before giving up and reporting the failure.",
            default=10,
            ge=0
        )
    ]

    @model_validator(mode="after")
    def check_bounds(self) -> "ReconnectSettings":
        if self.maximum < self.initial:
            raise ValueError("maximum must be greater than or equal to initial")
        return self


class PidgeonConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PIDGEON_",
        env_nested_delimiter="__",
        extra="ignore"
    )

    peer: Annotated[
        PeerSettings,
        Field(
            description="Where the code-execution peer listens.",
            default_factory=PeerSettings
        )
    ]

    client: Annotated[
        ClientSettings,
        Field(
            description=(
                "Client-side limits and behaviour: timeouts, frame size, "
                "wire encoding and notification policy."
            ),
            default_factory=ClientSettings
        )
    ]

    reconnect: Annotated[
        ReconnectSettings,
        Field(
            description="Backoff policy applied when the session connection drops.",
            default_factory=ReconnectSettings
        )
    ]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: tuple[PydanticBaseSettingsSource, ...] = (init_settings, env_settings)
        configfile = get_configfile()
        if configfile is not None:
            sources += (YamlConfigSettingsSource(settings_cls, yaml_file=configfile),)
        return sources

    def get_connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            host=self.peer.host,
            port=self.peer.port,
            max_frame_size=self.client.max_frame_size,
            read_size=self.client.read_size,
        )

    def get_session_config(self) -> SessionConfig:
        return SessionConfig(
            connect_timeout=self.client.connect_timeout,
            check_timeout=self.client.check_timeout,
            notify_threshold=self.client.notify_threshold,
            reconnect=self.reconnect.enabled,
            max_retries=self.reconnect.max_retries,
        )

    def get_backoff(self) -> ExponentialBackoff:
        return ExponentialBackoff(
            initial=self.reconnect.initial,
            maximum=self.reconnect.maximum,
            factor=self.reconnect.factor,
            jitter=self.reconnect.jitter,
        )
