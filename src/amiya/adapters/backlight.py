from pathlib import Path
from typing import List, Optional, Sequence

from .base import BackendControl, checked_level, checked_step
from ..core.event_manager import EventManager
from ..models.events import BrightnessChanged
from ..models.state import BacklightState
from ..utils.exceptions import BackendConnectionError
from ..utils.helpers import clamp_percent
from ..utils.logging import get_logger

logger = get_logger(__name__)

DEVICE_ROOT = "/sys/class/backlight"
PREFERRED_DEVICES = ["intel_backlight", "amdgpu_bl0", "radeon_bl0", "acpi_video0"]
DEFAULT_STEP = 5.0


def find_backlight_device(root: Path, preferred: Sequence[str] = PREFERRED_DEVICES) -> Optional[Path]:
    """Pick a backlight device directory, preferring well known drivers"""
    if not root.is_dir():
        return None
    for name in preferred:
        candidate = root / name
        if candidate.exists():
            return candidate
    entries = sorted(root.iterdir())
    return entries[0] if entries else None


def _read_int(path: Path) -> int:
    return int(path.read_text().strip())


class BacklightControl(BackendControl[BacklightState]):
    """Screen brightness through the sysfs backlight class"""

    name = "backlight"

    def __init__(self, event_manager: EventManager, device_root: str = DEVICE_ROOT,
                 preferred: Optional[List[str]] = None, timeout: float = 5.0):
        super().__init__(event_manager, timeout=timeout)
        self.device_root = Path(device_root)
        self.preferred = list(preferred) if preferred is not None else list(PREFERRED_DEVICES)

    def default_state(self) -> BacklightState:
        return BacklightState()

    def _open(self) -> Path:
        device = find_backlight_device(self.device_root, self.preferred)
        if device is None:
            raise BackendConnectionError(f"No backlight device found in {self.device_root}")
        max_brightness = _read_int(device / "max_brightness")
        if max_brightness <= 0:
            raise BackendConnectionError(f"Invalid max_brightness {max_brightness} for {device.name}")
        self._update_state(device=device.name, max_brightness=max_brightness)
        logger.info(f"Found backlight device: {device}")
        return device

    def _is_connection_error(self, error: Exception) -> bool:
        # Permission problems on the brightness file are not a lost device
        return isinstance(error, FileNotFoundError)

    async def _refresh(self) -> None:
        await self.refresh()

    async def refresh(self) -> BacklightState:
        """Re-read the current brightness from sysfs"""
        def fetch(device: Path):
            return _read_int(device / "brightness"), _read_int(device / "max_brightness")

        current, maximum = await self._run(fetch, reconnect=False)
        if maximum <= 0:
            return self.read()
        level = clamp_percent(current / maximum * 100.0)
        previous = self._replace_state(self.read().model_copy(
            update={"brightness": level, "max_brightness": maximum}
        ))
        if previous.brightness != level:
            self._publish(BrightnessChanged(level=level))
        return self.read()

    def get_brightness(self) -> float:
        return self.read().brightness

    async def set_brightness(self, level: float) -> float:
        """Set brightness in percent, clamped to 0-100"""
        level = checked_level(level, "brightness level")
        state = self._update_state(brightness=level)
        return await self._commit(state)

    async def increase_brightness(self, step: float = DEFAULT_STEP) -> float:
        step = checked_step(step, "brightness step")
        state = self._modify_state(
            lambda s: s.model_copy(update={"brightness": clamp_percent(s.brightness + step)})
        )
        return await self._commit(state)

    async def decrease_brightness(self, step: float = DEFAULT_STEP) -> float:
        step = checked_step(step, "brightness step")
        state = self._modify_state(
            lambda s: s.model_copy(update={"brightness": clamp_percent(s.brightness - step)})
        )
        return await self._commit(state)

    async def _commit(self, state: BacklightState) -> float:
        if await self._propagate("write brightness", self._write, state.brightness):
            logger.info(f"Brightness set to {state.brightness:.1f}%")
        self._publish(BrightnessChanged(level=state.brightness))
        return state.brightness

    @staticmethod
    def _write(device: Path, percent: float) -> None:
        maximum = _read_int(device / "max_brightness")
        value = int(round(percent / 100.0 * maximum))
        (device / "brightness").write_text(str(value))
