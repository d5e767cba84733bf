"""
Prompts for AI normalization of device records.

Only the free-text attributes that benefit from editing are sent to the
model; everything else passes through from the raw record untouched.
"""

import json
from typing import Any

SYSTEM_PROMPT = """You are a mobile device expert writing for technically literate but non-professional readers.

Your task is to normalize smartphone specifications:
1. Write in plain {language}, avoiding jargon copied from spec sheets
2. Remove redundant and obvious characteristics
3. Keep only what helps someone choose a phone
4. Use one consistent style: neither formal nor chatty"""

USER_PROMPT_TEMPLATE = """Normalize the smartphone specification fields below.

## Rules

### display_features
- Keep only what matters: refresh rate, brightness, HDR, panel technology (LTPO/AMOLED)
- Drop: Capacitive, Multi-touch, Frameless, Scratch resistant, Hole-punch (every phone has them)
- Drop protective glass brands (Gorilla Glass of any version)
- PWM dimming matters: "2160 Hz PWM" -> "low PWM 2160 Hz"

### camera_features
- Keep at most 6-8 key features
- Drop standard ones: Autofocus, Face detection, Geotagging, Touch focus, Scene mode, Self-timer
- Merge similar ones: several autofocus kinds -> "fast phase-detection autofocus"
- Deduplicate: "Night Mode 2.0" and "Night Mode" -> keep only "night mode 2.0"

### materials
- Use plain words: metal, plastic, glass, ceramic
- Drop glass brands

### colors
- Use plain color names, keep understandable marketing names

### cpu
- Drop part numbers: "Snapdragon 7s Gen2 (SM-7435AB)" -> "Snapdragon 7s Gen2"

### cameras[].type
Use ONLY these values: {camera_types}
Infer from context: "Wide Angle" or "Ultrawide" -> "wide", "Standard" or "Main" -> "main",
"Telephoto" -> "zoom", "Selfie" or "Front" -> "selfie".
cameras[].features may only contain "macro" or "monochrome".
Return exactly one camera entry per input camera, in the same order.

## Response format
Respond with a JSON object with exactly these keys:
{{"display_features": [string], "camera_features": [string], "materials": [string],
  "colors": [string], "cpu": string or null,
  "cameras": [{{"type": string, "features": [string]}}]}}

## Data

{data}"""

CAMERA_TYPES = ("main", "wide", "zoom", "selfie", "macro", "lidar", "infrared")


def get_system_prompt(language: str) -> str:
    return SYSTEM_PROMPT.format(language=language)


def build_user_prompt(fields: dict[str, Any]) -> str:
    """Embed the fields needing normalization as pretty-printed JSON."""
    return USER_PROMPT_TEMPLATE.format(
        camera_types=", ".join(f'"{t}"' for t in CAMERA_TYPES),
        data=json.dumps(fields, ensure_ascii=False, indent=2),
    )
