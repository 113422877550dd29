"""
语言表

语言代码（带地区）→ Windows LCID，以及语言 → NSIS MUI 语言名。
"""

from typing import Dict, List, Optional

LCID: Dict[str, int] = {
    "ar_SA": 1025,
    "bg_BG": 1026,
    "ca_ES": 1027,
    "cs_CZ": 1029,
    "da_DK": 1030,
    "de_DE": 1031,
    "el_GR": 1032,
    "en_US": 1033,
    "es_ES": 3082,
    "fi_FI": 1035,
    "fr_FR": 1036,
    "he_IL": 1037,
    "hu_HU": 1038,
    "it_IT": 1040,
    "ja_JP": 1041,
    "ko_KR": 1042,
    "nl_NL": 1043,
    "nb_NO": 1044,
    "pl_PL": 1045,
    "pt_BR": 1046,
    "pt_PT": 2070,
    "ro_RO": 1048,
    "ru_RU": 1049,
    "sk_SK": 1051,
    "sv_SE": 1053,
    "th_TH": 1054,
    "tr_TR": 1055,
    "uk_UA": 1058,
    "vi_VN": 1066,
    "zh_CN": 2052,
    "zh_TW": 1028,
}

LANGUAGE_NAMES: Dict[str, str] = {
    "ar": "Arabic",
    "bg": "Bulgarian",
    "ca": "Catalan",
    "cs": "Czech",
    "da": "Danish",
    "de": "German",
    "el": "Greek",
    "en": "English",
    "es": "Spanish",
    "fi": "Finnish",
    "fr": "French",
    "he": "Hebrew",
    "hu": "Hungarian",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "nl": "Dutch",
    "pl": "Polish",
    "pt": "Portuguese",
    "ro": "Romanian",
    "ru": "Russian",
    "sk": "Slovak",
    "sv": "Swedish",
    "th": "Thai",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
}

# 同一语言有多个地区变体时，需要按地区区分 NSIS 语言名
_REGION_NAMES: Dict[str, str] = {
    "zh_CN": "SimpChinese",
    "zh_TW": "TradChinese",
    "nb_NO": "Norwegian",
    "pt_BR": "PortugueseBR",
}

BUNDLED_LANGUAGES: List[str] = sorted(LCID)

DEFAULT_LANGUAGE = "en_US"


def to_lang_with_region(lang: str) -> str:
    """en → en_US，zh-CN → zh_CN"""
    lang = lang.replace("-", "_")
    if "_" in lang:
        return lang
    lang = lang.lower()
    guess = f"{lang}_{lang.upper()}"
    if guess in LCID:
        return guess
    for candidate in LCID:
        if candidate.startswith(lang + "_"):
            return candidate
    return guess


def lcid_for(lang_with_region: str) -> Optional[int]:
    return LCID.get(lang_with_region)


def nsis_language_name(lang_with_region: str) -> str:
    """MUI_LANGUAGE 使用的语言名

    Raises:
        ValueError: 未知语言
    """
    name = _REGION_NAMES.get(lang_with_region)
    if name is not None:
        return name
    lang = lang_with_region.split("_", 1)[0]
    name = LANGUAGE_NAMES.get(lang)
    if name is None:
        raise ValueError(f"未知的安装器语言: {lang_with_region}")
    if name == "Spanish":
        return "SpanishInternational"
    return name
