# Unit tests for providers and config modules
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.config import ScoringWeights, get_scoring_weights, INTELLIGENCE_TIMEOUT
from utils.providers import (
    ProviderError, create_client, is_provider_configured, get_model_for_task, get_api_call_params
)


class TestProviders(unittest.TestCase):
    def test_unsupported_provider(self):
        with self.assertRaises(ProviderError):
            create_client("not-a-provider")
        with self.assertRaises(ProviderError):
            get_model_for_task("chat", "not-a-provider")
        self.assertFalse(is_provider_configured("not-a-provider"))

    def test_unknown_task(self):
        with self.assertRaises(ProviderError):
            get_model_for_task("embeddings", "openai")

    @patch("utils.providers.load_api_key", return_value=None)
    def test_missing_key(self, _):
        self.assertFalse(is_provider_configured("openai"))
        with self.assertRaises(ProviderError):
            create_client("openai")

    @patch("utils.providers.load_api_key", return_value="sk-test")
    def test_openrouter_client(self, _):
        client = create_client("openrouter")
        self.assertIn("openrouter.ai", str(client.base_url))
        self.assertEqual(client.max_retries, 0)
        self.assertEqual(client.timeout, INTELLIGENCE_TIMEOUT)

    def test_models(self):
        self.assertEqual(get_model_for_task("chat", "openai"), "gpt-4o-mini")

    def test_api_call_params(self):
        params = get_api_call_params("m", [{"role": "user", "content": "hi"}], response_format={"type": "json_object"})
        self.assertEqual(set(params), {"model", "messages", "response_format"})
        self.assertEqual(get_api_call_params("m", [], temperature=0.0)["temperature"], 0.0)


class TestScoringWeights(unittest.TestCase):
    def test_defaults(self):
        weights = ScoringWeights()
        self.assertEqual((weights.energy_weight, weights.time_fit_bonus, weights.time_miss_penalty),
                         (20, 30, -50))
        self.assertEqual(weights.to_dict()["breakthrough_bonus"], 100)

    @patch("utils.config.load_config", return_value={"scoring_weights": {"context_bonus": 10, "generated_bonus": 5}})
    def test_project_overrides_settings(self, _):
        weights = get_scoring_weights({"context_bonus": 70})
        self.assertEqual(weights.context_bonus, 70)
        self.assertEqual(weights.generated_bonus, 5)
        self.assertEqual(weights.energy_weight, 20)


if __name__ == "__main__":
    unittest.main()
