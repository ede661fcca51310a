"""Constants for the EduKit integration.

Defines the integration domain, configuration keys, school/category defaults
and the sentinel names used by the location codec and reporting views.
"""

from typing import Final

# Integration domain used across all modules
DOMAIN: Final[str] = "edukit"

# Config entry keys
CONF_ADMIN_URL: Final[str] = "admin_url"
CONF_SCRIPT_URL: Final[str] = "script_url"
CONF_SCHOOL_CODE: Final[str] = "school_code"
CONF_DEMO_MODE: Final[str] = "demo_mode"
CONF_SELECTED_SCHOOL: Final[str] = "selected_school"
CONF_REQUEST_TIMEOUT: Final[str] = "request_timeout"
CONF_MAX_INLINE_IMAGE_BYTES: Final[str] = "max_inline_image_bytes"

# Virtual scope that unions every school's inventory
ALL_SCHOOLS_KEY: Final[str] = "모두"
DEFAULT_SCHOOL: Final[str] = "대건고"
DEFAULT_SCHOOLS: Final[tuple[str, ...]] = ("대건고", "신송고", "중산중", "신현중", "이음초")

DEFAULT_CATEGORIES: Final[tuple[str, ...]] = (
    "마이크로보드",
    "로봇",
    "드론",
    "키트",
    "단품",
    "3D펜",
    "센서",
    "기타",
)

# Location codec / report sentinels
UNASSIGNED_ROOM: Final[str] = "미지정"
OTHER_SHELF: Final[str] = "기타"
ALL_SLOTS: Final[str] = "전체"
LOCATION_SEPARATOR: Final[str] = ", "

# Apps Script web apps reject bodies well above a few MB; keep inline images under this
DEFAULT_MAX_INLINE_IMAGE_BYTES: Final[int] = 4 * 1024 * 1024
DEFAULT_REQUEST_TIMEOUT: Final[float] = 30.0
