import unittest

from omniswitch.i18n import Translator


class TestTranslator(unittest.TestCase):
    def test_english_is_always_supported(self):
        translator = Translator()
        self.assertTrue(translator.is_supported("en"))
        self.assertTrue(translator.is_supported("en-US"))
        self.assertEqual(translator.available_languages(), ["en"])

    def test_languages_without_catalogs_fall_back_to_english(self):
        translator = Translator()
        self.assertFalse(translator.is_supported("es"))
        translator.set_language("es")
        self.assertEqual(translator("Installing {}"), "Installing {}")


if __name__ == "__main__":
    unittest.main()
