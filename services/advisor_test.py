import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock
from models.results import RecommendedAction, VariantSignificance
from services.advisor import analyze
from services.exceptions import ExperimentNotFound


def rollup(variant_id, visitors, conversions):
    return SimpleNamespace(variant_id=variant_id, visitors=visitors, conversions=conversions, revenue=0.0)


def significance(variant_id, conversion_rate, confidence, is_significant):
    return VariantSignificance(variant_id=variant_id, conversion_rate=conversion_rate,
                               confidence=confidence, is_significant=is_significant)


class TestAnalyze(unittest.TestCase):

    def setUp(self):
        self.mock_store = MagicMock()
        self.mock_store.get_experiment.return_value = SimpleNamespace(
            id=1, minimum_sample_size=1000, confidence_threshold=95.0
        )
        self.mock_store.count_conversions.return_value = {}
        self.mock_store.list_variants.return_value = [
            SimpleNamespace(id=1, name="control", is_control=True),
            SimpleNamespace(id=2, name="variant_a", is_control=False),
        ]
        self.calculator = MagicMock()

    def run_analysis(self, results, significances, override=None):
        self.mock_store.list_results.return_value = results
        self.calculator.compute_significance.return_value = significances
        return analyze(self.mock_store, self.calculator, "t1", 1, override=override)

    def test_stop_winner(self):
        analysis = self.run_analysis(
            [rollup(1, 500, 20), rollup(2, 500, 30)],
            [significance(1, 4.0, 0, False), significance(2, 6.0, 96, True)],
        )

        self.assertEqual(analysis.recommended_action, RecommendedAction.STOP_WINNER)
        self.assertEqual(analysis.winner, 2)
        self.assertEqual(analysis.winner_name, "variant_a")
        self.assertEqual(analysis.confidence, 96)
        self.assertTrue(analysis.sample_size_met)
        self.assertEqual({s.variant_id: s.improvement for s in analysis.stats}, {1: None, 2: 50.0})
        self.assertIn('Variant "variant_a" is showing significant improvement', analysis.insights)
        self.assertIn('Variant "variant_a" showing positive trend (+50.0%)', analysis.insights)

    def test_winner_has_highest_improvement(self):
        self.mock_store.list_variants.return_value.append(SimpleNamespace(id=3, name="variant_b", is_control=False))

        analysis = self.run_analysis(
            [rollup(1, 500, 20), rollup(2, 500, 30), rollup(3, 500, 35)],
            [significance(1, 4.0, 0, False), significance(2, 6.0, 99, True), significance(3, 7.0, 97, True)],
        )

        self.assertEqual(analysis.winner, 3)
        self.assertEqual(analysis.confidence, 99)

    def test_winner_is_checked_before_sample_size(self):
        analysis = self.run_analysis(
            [rollup(1, 200, 8), rollup(2, 200, 16)],
            [significance(1, 4.0, 0, False), significance(2, 8.0, 97, True)],
        )

        self.assertFalse(analysis.sample_size_met)
        self.assertEqual(analysis.recommended_action, RecommendedAction.STOP_WINNER)

    def test_stop_inconclusive(self):
        analysis = self.run_analysis(
            [rollup(1, 600, 24), rollup(2, 600, 27)],
            [significance(1, 4.0, 0, False), significance(2, 4.5, 80, False)],
        )

        self.assertEqual(analysis.recommended_action, RecommendedAction.STOP_INCONCLUSIVE)
        self.assertIsNone(analysis.winner)
        self.assertEqual(analysis.total_visitors, 1200)
        self.assertIn("No significant difference found with adequate sample size", analysis.insights)

    def test_significant_below_threshold_is_not_a_winner(self):
        analysis = self.run_analysis(
            [rollup(1, 600, 24), rollup(2, 600, 36)],
            [significance(1, 4.0, 0, False), significance(2, 6.0, 90, True)],
        )

        self.assertIsNone(analysis.winner)
        self.assertEqual(analysis.recommended_action, RecommendedAction.STOP_INCONCLUSIVE)

    def test_losing_variant_is_not_a_winner(self):
        analysis = self.run_analysis(
            [rollup(1, 600, 24), rollup(2, 600, 18)],
            [significance(1, 4.0, 0, False), significance(2, 3.0, 97, True)],
        )

        self.assertIsNone(analysis.winner)
        # confident, just not in the right direction
        self.assertEqual(analysis.recommended_action, RecommendedAction.CONTINUE)
        self.assertIn('Variant "variant_a" showing negative trend (-25.0%)', analysis.insights)

    def test_continue_reports_shortfall(self):
        analysis = self.run_analysis(
            [rollup(1, 200, 8), rollup(2, 200, 9)],
            [significance(1, 4.0, 0, False), significance(2, 4.5, 40, False)],
        )

        self.assertEqual(analysis.recommended_action, RecommendedAction.CONTINUE)
        self.assertFalse(analysis.sample_size_met)
        self.assertIn("Need 600 more visitors", analysis.insights)
        # 12.5% up, above the trend threshold
        self.assertIn('Variant "variant_a" showing positive trend (+12.5%)', analysis.insights)

    def test_never_extends_on_its_own(self):
        analysis = self.run_analysis([], [])

        self.assertEqual(analysis.recommended_action, RecommendedAction.CONTINUE)
        self.assertEqual(analysis.total_visitors, 0)
        self.assertEqual(analysis.confidence, 0.0)
        self.assertIn("Need 1000 more visitors", analysis.insights)

    def test_override(self):
        analysis = self.run_analysis(
            [rollup(1, 200, 8), rollup(2, 200, 9)],
            [significance(1, 4.0, 0, False), significance(2, 4.5, 40, False)],
            override=RecommendedAction.EXTEND,
        )

        self.assertEqual(analysis.recommended_action, RecommendedAction.EXTEND)
        self.assertIn("Recommendation overridden from continue to extend", analysis.insights)

    def test_override_matching_recommendation_adds_nothing(self):
        analysis = self.run_analysis([], [], override=RecommendedAction.CONTINUE)

        self.assertFalse(any("overridden" in insight for insight in analysis.insights))

    def test_unknown_experiment(self):
        self.mock_store.get_experiment.return_value = None
        with self.assertRaises(ExperimentNotFound):
            analyze(self.mock_store, self.calculator, "t2", 1)


if __name__ == "__main__":
    unittest.main()
