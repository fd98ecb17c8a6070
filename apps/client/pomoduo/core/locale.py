from __future__ import annotations

from typing import Literal

LocaleCode = Literal["en-US", "zh-CN"]
WeekConvention = Literal["sunday", "monday"]

SUPPORTED_LOCALES: tuple[LocaleCode, ...] = ("en-US", "zh-CN")
DEFAULT_LOCALE: LocaleCode = "en-US"

_MONDAY_START_LOCALES: set[str] = {"zh-CN"}


def normalize_locale(value: object) -> LocaleCode:
    if not isinstance(value, str):
        return DEFAULT_LOCALE
    s = value.strip().lower().replace("_", "-")
    if s in {"zh", "zh-cn"}:
        return "zh-CN"
    return DEFAULT_LOCALE


def week_convention_for(locale: object) -> WeekConvention:
    return "monday" if normalize_locale(locale) in _MONDAY_START_LOCALES else "sunday"
