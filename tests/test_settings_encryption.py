import os
import sys
import unittest
import keyring
import yaml
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from db import SettingsRepository

class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1
    def __init__(self):
        self.store = {}
    def get_password(self, service, username):
        return self.store.get((service, username))
    def set_password(self, service, username, password):
        self.store[(service, username)] = password
    def delete_password(self, service, username):
        self.store.pop((service, username), None)

class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        keyring.set_keyring(DummyKeyring())
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        self.db_path = 'enc_settings.db'
        for path in (self.path, self.db_path):
            if os.path.exists(path):
                os.remove(path)

    def tearDown(self) -> None:
        for path in (self.path, self.db_path):
            if os.path.exists(path):
                os.remove(path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'gemini_api_key': 'secret', 'language': 'it'})
        self.assertTrue(os.path.exists(self.path))
        with open(self.path, encoding='utf-8') as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw['gemini_api_key'], True)
        data = cfg.load()
        self.assertEqual(data['gemini_api_key'], 'secret')
        self.assertEqual(data['language'], 'it')

    def test_secret_stays_out_of_settings_table(self) -> None:
        settings = SettingsRepository(self.db_path, self.path)
        settings.set_secret('gemini_api_key', 'secret')
        settings.set_text('weight_unit', 'lb')
        self.assertEqual(settings.secret('gemini_api_key'), 'secret')
        self.assertNotIn('gemini_api_key', settings.all_settings())
        self.assertEqual(settings.all_settings()['weight_unit'], 'lb')

    def test_saving_preferences_keeps_stored_key(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.set_secret('gemini_api_key', 'secret')
        cfg.save({'language': 'it'})
        with open(self.path, encoding='utf-8') as f:
            raw = yaml.safe_load(f)
        self.assertEqual(raw, {'gemini_api_key': True, 'language': 'it'})
        self.assertEqual(cfg.secret('gemini_api_key'), 'secret')

    def test_missing_keyring_entry_is_dropped(self) -> None:
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'gemini_api_key': True, 'language': 'en'}, f)
        cfg = YamlConfig(self.path)
        with self.assertLogs('config', level='WARNING'):
            data = cfg.load()
        self.assertEqual(data, {'language': 'en'})


class SettingsYamlTest(unittest.TestCase):
    def setUp(self) -> None:
        self.path = 'plain_settings.yaml'
        self.db_path = 'plain_settings.db'
        os.environ.pop('GEMINI_API_KEY', None)
        for path in (self.path, self.db_path):
            if os.path.exists(path):
                os.remove(path)

    def tearDown(self) -> None:
        for path in (self.path, self.db_path):
            if os.path.exists(path):
                os.remove(path)
        os.environ.pop('GEMINI_API_KEY', None)

    def test_yaml_edits_are_picked_up(self) -> None:
        settings = SettingsRepository(self.db_path, self.path)
        self.assertEqual(settings.get_text('default_time_range', 'all'), 'all')
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'default_time_range': 'week', 'ai_enabled': False}, f)
        self.assertEqual(settings.get_text('default_time_range', 'all'), 'week')
        self.assertFalse(settings.get_bool('ai_enabled', True))

    def test_invalid_yaml_value_rejected(self) -> None:
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'weight_unit': 'stone'}, f)
        with self.assertRaises(ValueError):
            SettingsRepository(self.db_path, self.path)

    def test_secret_from_environment(self) -> None:
        settings = SettingsRepository(self.db_path, self.path)
        self.assertIsNone(settings.secret('gemini_api_key'))
        os.environ['GEMINI_API_KEY'] = 'env-key'
        self.assertEqual(settings.secret('gemini_api_key'), 'env-key')

    def test_plain_secret_round_trip(self) -> None:
        cfg = YamlConfig(self.path, encrypt=False)
        cfg.save({'language': 'en'})
        cfg.set_secret('gemini_api_key', 'plain-key')
        cfg.save({'language': 'it'})
        self.assertEqual(cfg.load(), {'gemini_api_key': 'plain-key', 'language': 'it'})
        os.environ['GEMINI_API_KEY'] = 'env-key'
        self.assertEqual(cfg.secret('gemini_api_key'), 'plain-key')
        with self.assertRaises(KeyError):
            cfg.set_secret('language', 'de')

if __name__ == '__main__':
    unittest.main()
