import unittest
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock
from models.experiments import ExperimentCreate, VariantCreate
from models.results import ResultCreate
from services.exceptions import ExperimentNotFound, ExperimentValidationError, InvalidStatusTransition, VariantNotFound
from services.experiments import (
    STATUS_TRANSITIONS, validate_variants, create_new_experiment, change_status,
    start_experiment, pause_experiment, complete_experiment, archive_experiment,
    record_result, get_visitor_experiments,
)


def variants(*shares, control_index=0):
    return [
        VariantCreate(name=f"v{i}", traffic_percentage=share, is_control=(i == control_index))
        for i, share in enumerate(shares)
    ]


class TestValidateVariants(unittest.TestCase):

    def test_accepts_shares_summing_to_100(self):
        validate_variants(variants(50, 50))
        validate_variants(variants(33.33, 33.33, 33.34))
        validate_variants(variants(100))

    def test_rejects_shares_off_by_one(self):
        for shares in ((50, 49), (50, 51)):
            with self.assertRaisesRegex(ExperimentValidationError, "sum to 100"):
                validate_variants(variants(*shares))

    def test_requires_exactly_one_control(self):
        with self.assertRaisesRegex(ExperimentValidationError, "got 0"):
            validate_variants(variants(50, 50, control_index=None))

        doubled = variants(50, 50)
        doubled[1].is_control = True
        with self.assertRaisesRegex(ExperimentValidationError, "got 2"):
            validate_variants(doubled)

    def test_requires_a_variant(self):
        with self.assertRaises(ExperimentValidationError):
            validate_variants([])

    def test_rejected_definition_is_not_stored(self):
        store = MagicMock()
        data = ExperimentCreate(name="Bad", metric="signup", variants=variants(60, 60))

        with self.assertRaises(ExperimentValidationError):
            create_new_experiment(store, "t1", data)
        store.create_experiment.assert_not_called()


class TestCreateExperiment(unittest.TestCase):

    def test_passes_fields_and_variants_to_store(self):
        store = MagicMock()
        store.create_experiment.return_value = SimpleNamespace(id=7)
        data = ExperimentCreate(name="Hero", metric="purchase", variants=variants(50, 50))

        result = create_new_experiment(store, "t1", data)

        self.assertEqual(result.id, 7)
        tenant_id, fields, variant_rows = store.create_experiment.call_args.args
        self.assertEqual(tenant_id, "t1")
        self.assertEqual(fields["name"], "Hero")
        self.assertNotIn("variants", fields)
        self.assertEqual([v["is_control"] for v in variant_rows], [True, False])


class TestStatusLifecycle(unittest.TestCase):

    def setUp(self):
        self.store = MagicMock()
        self.experiment = SimpleNamespace(id=1, status="draft", start_date=None, end_date=None)
        self.store.get_experiment.return_value = self.experiment

        def update(tenant_id, experiment_id, **fields):
            for key, value in fields.items():
                setattr(self.experiment, key, value)
            return self.experiment

        self.store.update_experiment.side_effect = update

    def test_full_lifecycle(self):
        start_experiment(self.store, "t1", 1)
        started_at = self.experiment.start_date
        self.assertIsNotNone(started_at)

        pause_experiment(self.store, "t1", 1)
        start_experiment(self.store, "t1", 1)
        self.assertEqual(self.experiment.start_date, started_at)

        complete_experiment(self.store, "t1", 1)
        self.assertIsNotNone(self.experiment.end_date)
        self.assertEqual(archive_experiment(self.store, "t1", 1).status, "archived")

    def test_start_date_is_not_restamped(self):
        original = datetime(2024, 5, 1, tzinfo=timezone.utc)
        self.experiment.status = "paused"
        self.experiment.start_date = original

        change_status(self.store, "t1", 1, "running")

        self.assertEqual(self.experiment.start_date, original)

    def test_illegal_moves_are_rejected(self):
        for current, requested in (("draft", "paused"), ("completed", "running"), ("archived", "draft"), ("running", "running")):
            self.experiment.status = current
            with self.assertRaises(InvalidStatusTransition) as ctx:
                change_status(self.store, "t1", 1, requested)
            self.assertEqual(ctx.exception.status_code, 409)
        self.store.update_experiment.assert_not_called()

    def test_archived_is_terminal(self):
        self.assertEqual(STATUS_TRANSITIONS["archived"], set())

    def test_unknown_experiment(self):
        self.store.get_experiment.return_value = None
        with self.assertRaises(ExperimentNotFound):
            start_experiment(self.store, "t1", 404)


class TestRecordResult(unittest.TestCase):

    def test_unknown_variant(self):
        store = MagicMock()
        store.upsert_result.return_value = None
        rollup = ResultCreate(variant_id=99, date=date(2025, 1, 1), visitors=10)

        with self.assertRaises(VariantNotFound):
            record_result(store, "t1", 1, rollup)

    def test_rollup_is_forwarded_without_variant_id(self):
        store = MagicMock()
        rollup = ResultCreate(variant_id=3, date=date(2025, 1, 1), visitors=10, conversions=2)

        record_result(store, "t1", 1, rollup)

        tenant_id, experiment_id, variant_id, fields = store.upsert_result.call_args.args
        self.assertEqual((tenant_id, experiment_id, variant_id), ("t1", 1, 3))
        self.assertEqual(fields["visitors"], 10)
        self.assertNotIn("variant_id", fields)


class TestVisitorExperiments(unittest.TestCase):

    def test_pairs_experiment_with_variant(self):
        store = MagicMock()
        experiment, variant = SimpleNamespace(id=1), SimpleNamespace(id=2)
        store.list_visitor_assignments.return_value = [SimpleNamespace(experiment=experiment, variant=variant)]

        self.assertEqual(get_visitor_experiments(store, "t1", "u1"), [{"experiment": experiment, "variant": variant}])
        store.list_visitor_assignments.assert_called_once_with("t1", "u1")


if __name__ == "__main__":
    unittest.main()
