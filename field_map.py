"""Static translation table from spec-sheet labels to canonical field names.

Keys are lowercased and come in two forms:
  - bare labels ("chipset", "3.5mm jack") that mean the same thing in every table
  - "{group}: {label}" composites for labels that are ambiguous on their own,
    e.g. "type" appears under both Display and Battery

Several labels may point at the same field ("main camera: single" and
"main camera: triple" both fill ``main_camera``). Labels with no entry are
not mapped; extending coverage means adding rows here.
"""

from models import SPEC_FIELD_NAMES

FIELD_MAP: dict[str, str] = {
    # Network / launch
    "technology": "network_technology",
    "network: technology": "network_technology",
    "announced": "launch_announced",
    "launch: announced": "launch_announced",
    "status": "launch_status",
    "launch: status": "launch_status",
    # Body
    "dimensions": "body_dimensions",
    "body: dimensions": "body_dimensions",
    "weight": "body_weight",
    "body: weight": "body_weight",
    "build": "body_build",
    "body: build": "body_build",
    "sim": "body_sim",
    "body: sim": "body_sim",
    # Display
    "display: type": "display_type",
    "display type": "display_type",
    "size": "display_size",
    "display: size": "display_size",
    "resolution": "display_resolution",
    "display: resolution": "display_resolution",
    "protection": "display_protection",
    "display: protection": "display_protection",
    # Platform
    "os": "platform_os",
    "platform: os": "platform_os",
    "chipset": "platform_chipset",
    "platform: chipset": "platform_chipset",
    "cpu": "platform_cpu",
    "platform: cpu": "platform_cpu",
    "gpu": "platform_gpu",
    "platform: gpu": "platform_gpu",
    # Memory
    "internal": "memory_internal",
    "memory: internal": "memory_internal",
    # Main camera
    "single camera": "main_camera",
    "dual camera": "main_camera",
    "triple camera": "main_camera",
    "quad camera": "main_camera",
    "main camera: single": "main_camera",
    "main camera: dual": "main_camera",
    "main camera: triple": "main_camera",
    "main camera: quad": "main_camera",
    "main camera: penta": "main_camera",
    "main camera: features": "main_camera_features",
    "main camera: video": "main_camera_video",
    # Selfie camera
    "selfie camera: single": "selfie_camera",
    "selfie camera: dual": "selfie_camera",
    "selfie camera: video": "selfie_camera_video",
    # Sound
    "loudspeaker": "sound_loudspeaker",
    "sound: loudspeaker": "sound_loudspeaker",
    "3.5mm jack": "sound_3_5mm_jack",
    "sound: 3.5mm jack": "sound_3_5mm_jack",
    # Comms
    "wlan": "comms_wlan",
    "comms: wlan": "comms_wlan",
    "bluetooth": "comms_bluetooth",
    "comms: bluetooth": "comms_bluetooth",
    "positioning": "comms_positioning",
    "comms: positioning": "comms_positioning",
    "nfc": "comms_nfc",
    "comms: nfc": "comms_nfc",
    "radio": "comms_radio",
    "comms: radio": "comms_radio",
    "usb": "comms_usb",
    "comms: usb": "comms_usb",
    # Features
    "sensors": "features_sensors",
    "features: sensors": "features_sensors",
    # Battery
    "battery type": "battery_type",
    "battery: type": "battery_type",
    "charging": "battery_charging",
    "battery: charging": "battery_charging",
    # Misc
    "colors": "misc_colors",
    "misc: colors": "misc_colors",
    "models": "misc_models",
    "misc: models": "misc_models",
    "price": "misc_price",
    "misc: price": "misc_price",
}

_unknown_targets = set(FIELD_MAP.values()) - set(SPEC_FIELD_NAMES)
if _unknown_targets:
    raise RuntimeError(f"Field map targets that are not canonical fields: {sorted(_unknown_targets)}")


def normalize_label(label: str) -> str:
    """Lowercase and collapse whitespace so lookups ignore cosmetic differences."""
    return " ".join(label.split()).lower()


def lookup(label: str) -> str | None:
    """Return the canonical field for a label, or None if it is unmapped."""
    return FIELD_MAP.get(normalize_label(label))
