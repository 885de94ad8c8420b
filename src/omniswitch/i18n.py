from __future__ import annotations

import gettext
import locale
from importlib import resources

DOMAIN = "omniswitch"
# Messages are written in English; other languages need a shipped catalog.
SOURCE_LANGUAGE = "en"


def _localedir() -> str:
    return str(resources.files("omniswitch") / "locale")


class Translator:
    """
    A callable holding the active gettext translation.

    Message catalogs are looked up in ``omniswitch/locale``; any language
    without a catalog falls back to the untranslated English strings.
    """

    def __init__(self):
        self._translator = lambda s: s
        self.set_language()

    def set_language(self, lang_code=None):
        try:
            if lang_code is None:
                lang_env = locale.getlocale()[0] or "en_US"
                lang_code = lang_env.split(".")[0]

            normalized_code = lang_code.replace("-", "_")
            langs_to_try = [normalized_code]
            if "_" in normalized_code:
                langs_to_try.append(normalized_code.split("_")[0])
            langs_to_try.append(SOURCE_LANGUAGE)

            translation = gettext.translation(
                DOMAIN, localedir=_localedir(), languages=langs_to_try, fallback=True
            )
            self._translator = translation.gettext
        except (OSError, ValueError, TypeError):
            self._translator = lambda s: s

    def __call__(self, text):
        return self._translator(text)

    def available_languages(self):
        """English plus every language with a catalog under ``omniswitch/locale``."""
        languages = {SOURCE_LANGUAGE}
        locale_dir = resources.files("omniswitch").joinpath("locale")
        if locale_dir.is_dir():
            for entry in locale_dir.iterdir():
                if entry.joinpath("LC_MESSAGES", f"{DOMAIN}.mo").is_file():
                    languages.add(entry.name)
        return sorted(languages)

    def is_supported(self, code):
        normalized_code = code.replace("-", "_")
        if normalized_code.split("_")[0] == SOURCE_LANGUAGE:
            return True
        try:
            return gettext.find(DOMAIN, localedir=_localedir(), languages=[normalized_code]) is not None
        except (OSError, TypeError):
            return False


_ = Translator()
