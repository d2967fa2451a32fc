import os
import sys
import unittest
import keyring
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig

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
        self.backend = DummyKeyring()
        keyring.set_keyring(self.backend)
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'jwt_secret': 'secret', 'log_level': 'DEBUG'})
        self.assertTrue(os.path.exists(self.path))
        with open(self.path, encoding='utf-8') as f:
            self.assertNotIn('secret', f.read().replace('jwt_secret', ''))
        data = cfg.load()
        self.assertEqual(data['jwt_secret'], 'secret')
        self.assertEqual(data['log_level'], 'DEBUG')
        self.assertEqual(cfg.settings().jwt_secret, 'secret')

    def test_missing_secret_is_dropped(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'jwt_secret': 'secret'})
        self.backend.store.clear()
        self.assertNotIn('jwt_secret', cfg.load())


class SettingsValidationTest(unittest.TestCase):
    def setUp(self) -> None:
        self.path = 'plain_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)

    def test_defaults_without_file(self) -> None:
        settings = YamlConfig(self.path).settings()
        self.assertEqual(settings.feed_per_source_limit, 3)
        self.assertEqual(settings.feed_total_limit, 6)
        self.assertEqual(settings.log_format, 'text')

    def test_invalid_values_rejected(self) -> None:
        cfg = YamlConfig(self.path)
        with self.assertRaises(ValueError):
            cfg.save({'feed_total_limit': 0})
        with self.assertRaises(ValueError):
            cfg.save({'log_format': 'xml'})

if __name__ == '__main__':
    unittest.main()
