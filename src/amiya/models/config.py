from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = None
    max_size: int = 10  # MB
    backup_count: int = 5
    format: str = '%(asctime)s - %(name)s - [%(levelname)s] - %(message)s'

    @field_validator('level')
    def validate_level(cls, v):
        level = str(v).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level {v}")
        return level


class EventsConfig(BaseModel):
    capacity: int = Field(256, gt=0)


class IpcConfig(BaseModel):
    socket_path: Optional[str] = None
    read_timeout: float = Field(5.0, gt=0)


class BackendConfig(BaseModel):
    enabled: bool = True
    timeout: float = Field(5.0, gt=0)


class BacklightConfig(BackendConfig):
    device_root: str = "/sys/class/backlight"
    preferred: List[str] = ["intel_backlight", "amdgpu_bl0", "radeon_bl0", "acpi_video0"]


class PolledBackendConfig(BackendConfig):
    poll_interval: float = Field(5.0, gt=0)


class BackendsConfig(BaseModel):
    connect_retries: int = Field(3, ge=0)
    retry_delay: float = Field(1.0, ge=0)
    audio: BackendConfig = BackendConfig()
    backlight: BacklightConfig = BacklightConfig()
    battery: PolledBackendConfig = PolledBackendConfig(poll_interval=30.0)
    bluetooth: BackendConfig = BackendConfig(timeout=10.0)
    network: BackendConfig = BackendConfig(timeout=10.0)
    media: PolledBackendConfig = PolledBackendConfig(poll_interval=2.0)
    power: BackendConfig = BackendConfig(timeout=10.0)


class SystemMonitorConfig(BaseModel):
    enabled: bool = True
    cpu_interval: float = Field(2.0, gt=0)
    temperature_interval: float = Field(5.0, gt=0)
    thermal_paths: List[str] = [
        "/sys/class/thermal/thermal_zone0/temp",
        "/sys/class/hwmon/hwmon0/temp1_input",
    ]


class CompositorConfig(BaseModel):
    enabled: bool = True
    socket_path: Optional[str] = None
    poll_interval: float = Field(2.0, gt=0)
    timeout: float = Field(5.0, gt=0)


class AmiyaConfig(BaseModel):
    """Validated daemon configuration; every section has usable defaults"""
    logging: LoggingConfig = LoggingConfig()
    events: EventsConfig = EventsConfig()
    ipc: IpcConfig = IpcConfig()
    backends: BackendsConfig = BackendsConfig()
    system_monitor: SystemMonitorConfig = SystemMonitorConfig()
    compositor: CompositorConfig = CompositorConfig()
