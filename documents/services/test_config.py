"""
Tests for the pipeline configuration service.
"""

from django.test import SimpleTestCase, override_settings

from documents.services import config
from documents.services.exceptions import ServiceError, ServiceNotConfigured


class PipelineConfigTestCase(SimpleTestCase):
    """Test cases for get_pipeline_config."""

    @override_settings(DOCUMENT_PIPELINE=None)
    def test_defaults_when_not_configured(self):
        """Test that defaults apply when the setting is absent."""
        result = config.get_pipeline_config()

        self.assertEqual(result.pool_max_size, 2)
        self.assertEqual(result.pool_min_size, 1)
        self.assertEqual(result.output_dpi, 300)
        self.assertEqual(result.default_page_size, 'letter')
        self.assertEqual(result.max_group_rows, 500)
        self.assertEqual(result.save_retry_attempts, 3)

    @override_settings(DOCUMENT_PIPELINE={'POOL_MAX_SIZE': 6, 'DEFAULT_PAGE_SIZE': 'A4'})
    def test_settings_merge_over_defaults(self):
        result = config.get_pipeline_config()

        self.assertEqual(result.pool_max_size, 6)
        self.assertEqual(result.default_page_size, 'a4')
        self.assertEqual(result.pool_acquire_timeout, 10.0)

    def test_overrides_apply_last(self):
        """Test that explicit overrides win over settings."""
        result = config.get_pipeline_config({'POOL_MAX_SIZE': 4, 'OUTPUT_DPI': 600})

        self.assertEqual(result.pool_max_size, 4)
        self.assertEqual(result.output_dpi, 600)

    def test_config_is_immutable(self):
        result = config.get_pipeline_config()

        with self.assertRaises(AttributeError):
            result.pool_max_size = 10

    def test_invalid_values_raise_not_configured(self):
        cases = [
            {'POOL_MAX_SIZE': 0},
            {'POOL_MIN_SIZE': 5, 'POOL_MAX_SIZE': 2},
            {'POOL_MIN_SIZE': -1},
            {'POOL_ACQUIRE_TIMEOUT': 0},
            {'POOL_RENDER_TIMEOUT': -1},
            {'POOL_CRASH_ALERT_THRESHOLD': 0},
            {'OUTPUT_DPI': 200},
            {'DEFAULT_PAGE_SIZE': 'tabloid'},
            {'MAX_GROUP_ROWS': 0},
            {'SAVE_RETRY_ATTEMPTS': 0},
            {'POOL_MAX_SIZE': 'many'},
            {'POOL_IDLE_TIMEOUT': None},
        ]
        for overrides in cases:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ServiceNotConfigured):
                    config.get_pipeline_config(overrides)

    def test_not_configured_is_a_service_error(self):
        with self.assertRaises(ServiceError):
            config.get_pipeline_config({'OUTPUT_DPI': 72})
