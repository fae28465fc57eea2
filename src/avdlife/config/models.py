from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from avdlife.utils.platform import host_abi

# Earliest API level the SDK manager still serves out of the box
DEFAULT_SDK_VERSION = 10


class EmulatorSettings(BaseModel):
    """Which virtual device to run."""

    name: str | None = None  # AVD name; generated from version/abi/flavor when empty
    sdk_version: int = DEFAULT_SDK_VERSION  # Android API level of the system image
    abi: str | None = None  # System image ABI; defaults to the host CPU, then x86
    include_google_apis: bool = False  # Use the google_apis image flavor
    device: str | None = None  # avdmanager --device profile (e.g. "pixel_6")


class PortSettings(BaseModel):
    """Console port range scanned when picking an emulator port (scanned high to low)."""

    high: int = 5680
    low: int = 5554
    step: int = 2  # Console/adb port pairs: the console port is always even
    probe_sockets: bool = False  # Also skip ports something already listens on locally

    @model_validator(mode="after")
    def _check_range(self) -> PortSettings:
        if self.step <= 0:
            raise ValueError("ports.step must be positive")
        if self.low > self.high:
            raise ValueError("ports.low must not exceed ports.high")
        return self


class Settings(BaseSettings):
    """
    Emulator lifecycle configuration.

    Loads values from the following sources:
    - Environment variables (with prefix AVDLIFE_)
    - Initialization values (e.g., from YAML)
    - .env file
    - Secret files
    """

    model_config = SettingsConfigDict(env_prefix="AVDLIFE_", env_nested_delimiter="__")

    sdk_root: Path | None = None  # Android SDK root; falls back to ANDROID_SDK_ROOT/ANDROID_HOME
    avd_root: Path = Path("build/android-avd-root")  # Per-run virtual device directory
    emulator: EmulatorSettings = Field(default_factory=EmulatorSettings)
    headless: bool = False  # Run without window, skin and audio
    additional_emulator_arguments: list[str] = Field(default_factory=list)  # Passed through as-is
    log_emulator_output: bool = False  # Relay emulator stdout/stderr into the log
    ports: PortSettings = Field(default_factory=PortSettings)
    boot_timeout: float = 300.0  # Seconds to wait for sys.boot_completed
    termination_timeout: float = 15.0  # Seconds per stop attempt (SIGTERM, then SIGKILL)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,  # type: type[BaseSettings]
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Configure the order of configuration sources.

        Loading priority:
        1. Environment variables
        2. Initialization values (e.g., from YAML)
        3. .env file
        4. Secret files
        """
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)

    @model_validator(mode="after")
    def _default_sdk_root(self) -> Settings:
        if self.sdk_root is None:
            env_root = os.getenv("ANDROID_SDK_ROOT") or os.getenv("ANDROID_HOME")
            if env_root:
                self.sdk_root = Path(env_root)
        return self

    # ------------------------
    # Derived values
    # ------------------------
    @property
    def android_version(self) -> str:
        return f"android-{self.emulator.sdk_version}"

    @property
    def flavor(self) -> str:
        return "google_apis" if self.emulator.include_google_apis else "default"

    @property
    def abi(self) -> str:
        return self.emulator.abi or host_abi() or "x86"

    @property
    def system_image_package(self) -> str:
        return f"system-images;{self.android_version};{self.flavor};{self.abi}"

    @property
    def emulator_name(self) -> str:
        if self.emulator.name:
            return self.emulator.name
        return f"generated-{self.android_version}_{self.abi}-{self.flavor}"

    def require_sdk_root(self) -> Path:
        """Return the absolute SDK root, failing if none was configured."""
        if self.sdk_root is None:
            raise ValueError(
                "No Android SDK root configured: set sdk_root, AVDLIFE_SDK_ROOT or ANDROID_SDK_ROOT"
            )
        return self.sdk_root.absolute()

    def emulator_arguments(self) -> list[str]:
        """Flags appended after the port on the emulator command line."""
        args: list[str] = []
        if self.headless:
            args += ["-no-skin", "-no-audio", "-no-window"]
        args += list(self.additional_emulator_arguments)
        return args

    def environment(self) -> dict[str, str]:
        """
        Variables applied to every spawned tool, the emulator and the boot poll,
        so all of them agree on where the SDK and the device state live.
        """
        sdk_root = str(self.require_sdk_root())
        return {
            "ANDROID_SDK_ROOT": sdk_root,
            "ANDROID_HOME": sdk_root,
            "ANDROID_AVD_HOME": str(self.avd_root.absolute()),
        }
