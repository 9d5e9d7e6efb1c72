import unittest
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

from backend.src.analysis import (
    AnalysisEngine,
    FrameworkScorer,
    apply_timing,
    detect_alerts,
    detect_patterns,
    generate_recommendations,
)
from backend.src.analysis.engine import seasonality
from backend.src.analysis.framework import DIMENSIONS, overall_assessment, trend
from backend.src.ingestion import GarminNormalizer, is_meaningful
from backend.src.models import DailyMetrics
from backend.src.schemas import NormalizedDailyMetrics
from backend.src.storage import RawDataStore
from tests.helpers import NOW, make_session_factory


def normalize(**payloads):
    records = [
        {"data_type": data_type, "raw_json": payload, "created_at": NOW}
        for data_type, payload in payloads.items()
    ]
    return GarminNormalizer().normalize(records, day=NOW.date())


class TestTimingCorrection(unittest.TestCase):
    def test_reflects_previous_day(self):
        metrics = normalize(hrv={"wellnessData": [{"lastNightAvg": 40}]})
        day = date(2023, 1, 1)
        for offset in range(0, 800, 7):
            measured = day + timedelta(days=offset)
            corrected = apply_timing(metrics, measured, now=NOW)
            self.assertEqual(corrected.hrv.reflects_date, measured - timedelta(days=1))
            self.assertEqual(corrected.hrv.measurement_date, measured)

    def test_year_boundary(self):
        corrected = apply_timing(NormalizedDailyMetrics(), date(2024, 1, 1), now=NOW)
        self.assertEqual(corrected.hrv.reflects_date, date(2023, 12, 31))

    def test_validation_only_for_past_dates(self):
        metrics = NormalizedDailyMetrics()
        self.assertTrue(apply_timing(metrics, NOW.date() - timedelta(days=1), now=NOW).hrv.can_validate_patterns)
        self.assertFalse(apply_timing(metrics, NOW.date(), now=NOW).hrv.can_validate_patterns)
        self.assertFalse(apply_timing(metrics, NOW.date() + timedelta(days=1), now=NOW).hrv.can_validate_patterns)

    def test_metadata_and_input_untouched(self):
        metrics = normalize(hrv={"wellnessData": [{"lastNightAvg": 40}]})
        corrected = apply_timing(metrics, NOW.date(), now=NOW)
        self.assertTrue(corrected.metadata["timingCorrected"])
        self.assertIn("timingNote", corrected.metadata)
        self.assertIsNone(metrics.hrv.reflects_date)
        self.assertEqual(metrics.metadata, {})


class TestRules(unittest.TestCase):
    def test_short_sleep_with_low_hrv(self):
        metrics = normalize(
            hrv={"wellnessData": [{"lastNightAvg": 22}]},
            sleep={"dailySleepDTO": {"sleepTimeSeconds": 18000}},
        )
        self.assertEqual(metrics.hrv.score, 22)
        self.assertEqual(metrics.sleep.duration, 300)

        patterns = detect_patterns(metrics)
        self.assertEqual([p.type for p in patterns], ["sleep_hrv_correlation"])
        self.assertEqual(patterns[0].confidence, 0.85)

        alerts = detect_alerts(metrics, now=NOW)
        self.assertEqual([a.severity for a in alerts], ["critical"])
        self.assertEqual(alerts[0].triggered, NOW)

        recommendations = generate_recommendations(metrics)
        self.assertEqual(
            [(r.priority, r.category) for r in recommendations],
            [(1, "Recovery"), (2, "Sleep")],
        )

    def test_no_data_fires_nothing(self):
        metrics = normalize()
        self.assertEqual(detect_patterns(metrics), [])
        self.assertEqual(generate_recommendations(metrics), [])
        self.assertEqual(detect_alerts(metrics), [])

    def test_above_average_recovery(self):
        metrics = normalize(hrv={"wellnessData": [{"lastNightAvg": 60, "sevenDayAvg": 50}]})
        patterns = detect_patterns(metrics)
        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].type, "optimal_recovery")
        self.assertEqual(patterns[0].confidence, 0.92)
        self.assertEqual(patterns[0].impact, "positive")

    def test_exactly_one_sleep_pattern_for_short_sleep(self):
        for score in (10, 40, 90):
            metrics = normalize(
                hrv={"wellnessData": [{"lastNightAvg": score, "sevenDayAvg": 200}]},
                sleep={"dailySleepDTO": {"sleepTimeSeconds": 300 * 60}},
            )
            matching = [p for p in detect_patterns(metrics) if p.type == "sleep_hrv_correlation"]
            self.assertEqual(len(matching), 1)

    def test_energy_depletion(self):
        metrics = normalize(body_battery={"wellnessData": [{"value": 70}, {"value": 12}]})
        self.assertEqual([p.type for p in detect_patterns(metrics)], ["energy_depletion"])
        self.assertEqual([a.severity for a in detect_alerts(metrics)], ["warning"])

    def test_missing_metric_never_triggers(self):
        # Defaults are zero; absent body battery must not look depleted
        metrics = normalize(steps={"totalSteps": 500})
        self.assertEqual(detect_patterns(metrics), [])
        self.assertEqual(detect_alerts(metrics), [])

    def test_thresholds_are_strict(self):
        metrics = normalize(
            hrv={"wellnessData": [{"lastNightAvg": 35}]},
            sleep={"dailySleepDTO": {"sleepTimeSeconds": 420 * 60}},
            stress={"wellnessData": [{"value": 50}]},
        )
        self.assertEqual(generate_recommendations(metrics), [])

        metrics = normalize(hrv={"wellnessData": [{"lastNightAvg": 25}]})
        self.assertEqual(detect_alerts(metrics), [])

    def test_recommendations_sorted(self):
        metrics = normalize(
            stress={"wellnessData": [{"value": 75}]},
            sleep={"dailySleepDTO": {"sleepTimeSeconds": 6 * 3600}},
            hrv={"wellnessData": [{"lastNightAvg": 20}]},
        )
        priorities = [r.priority for r in generate_recommendations(metrics)]
        self.assertEqual(priorities, [1, 2, 3])

    def test_poor_sleep_alert(self):
        metrics = normalize(sleep={"dailySleepDTO": {"sleepTimeSeconds": 30000, "sleepScore": 30}})
        self.assertEqual([a.message for a in detect_alerts(metrics)],
                         ["Poor sleep quality detected - review your sleep hygiene"])


class TestStoredPayloadsToRules(unittest.TestCase):
    """Payloads in the shape the sync accepts must reach the rules intact."""

    def normalize_stored(self, data_type, payload):
        self.assertTrue(is_meaningful(payload, data_type))
        return normalize(**{data_type: payload})

    def test_hrv(self):
        metrics = self.normalize_stored(
            "hrv", {"wellnessData": [{"lastNightAvg": 22, "sevenDayAvg": 45, "status": "LOW"}]}
        )
        self.assertEqual(metrics.hrv.score, 22)
        self.assertEqual(metrics.hrv.seven_day_avg, 45)
        self.assertEqual(metrics.hrv.status, "low")
        self.assertEqual([a.severity for a in detect_alerts(metrics)], ["critical"])
        self.assertEqual([r.category for r in generate_recommendations(metrics)], ["Recovery"])

    def test_sleep(self):
        metrics = self.normalize_stored("sleep", {"dailySleepDTO": {"sleepTimeSeconds": 5 * 3600}})
        self.assertEqual(metrics.sleep.duration, 300)
        self.assertEqual([r.category for r in generate_recommendations(metrics)], ["Sleep"])

    def test_steps(self):
        metrics = self.normalize_stored("steps", {"totalSteps": 10000})
        self.assertEqual(metrics.activity.steps, 10000)
        self.assertEqual(FrameworkScorer().score(metrics).dimensions["koerper"].score, 3.0)

    def test_stress(self):
        metrics = self.normalize_stored("stress", {"wellnessData": [{"value": 75, "max": 95}]})
        self.assertEqual(metrics.stress.avg, 75)
        self.assertEqual(metrics.stress.max, 95)

        recommendations = generate_recommendations(metrics)
        self.assertEqual([(r.priority, r.category) for r in recommendations], [(3, "Stress")])
        self.assertLess(FrameworkScorer().score(metrics).dimensions["mind"].score, 1.5)

    def test_stress_entry_without_values_stays_neutral(self):
        metrics = self.normalize_stored("stress", {"wellnessData": [{"calendarDate": "2024-06-15"}]})
        self.assertEqual(generate_recommendations(metrics), [])
        self.assertEqual(FrameworkScorer().score(metrics).dimensions["mind"].score, 1.5)

    def test_body_battery_levels(self):
        metrics = self.normalize_stored("body_battery", {"wellnessData": [{"value": 70}, {"value": 12}]})
        self.assertTrue(metrics.has_battery_level())
        self.assertEqual((metrics.body_battery.start, metrics.body_battery.end), (70, 12))
        self.assertEqual([p.type for p in detect_patterns(metrics)], ["energy_depletion"])
        self.assertEqual([a.severity for a in detect_alerts(metrics)], ["warning"])

    def test_body_battery_charge_totals_only(self):
        metrics = self.normalize_stored("body_battery", {"wellnessData": [{"charged": 40, "drained": 30}]})
        self.assertFalse(metrics.has_battery_level())
        self.assertEqual((metrics.body_battery.charged, metrics.body_battery.drained), (40, 30))
        self.assertEqual(detect_patterns(metrics), [])
        self.assertEqual(detect_alerts(metrics), [])

        dimensions = FrameworkScorer().score(metrics).dimensions
        self.assertEqual(dimensions["energie"].score, 1.5)
        self.assertEqual(dimensions["balance"].score, 3.0)


class TestFrameworkScorer(unittest.TestCase):
    def setUp(self):
        self.scorer = FrameworkScorer()

    def test_no_inputs_is_neutral(self):
        result = self.scorer.score(NormalizedDailyMetrics())
        self.assertEqual(set(result.dimensions), set(DIMENSIONS))
        for dimension in result.dimensions.values():
            self.assertEqual(dimension.score, 1.5)
            self.assertEqual(dimension.trend, "stable")
        self.assertEqual(result.total, 10.5)
        self.assertTrue(result.assessment.startswith("Poor"))

    def test_deterministic(self):
        metrics = normalize(
            hrv={"wellnessData": [{"lastNightAvg": 50, "sevenDayAvg": 45}]},
            steps={"totalSteps": 7000},
            stress={"wellnessData": [{"value": 30}]},
        )
        self.assertEqual(self.scorer.score(metrics), self.scorer.score(metrics))

    def test_full_night_of_excellent_sleep(self):
        metrics = normalize(sleep={"dailySleepDTO": {"sleepTimeSeconds": 480 * 60, "sleepScore": 90}})
        self.assertEqual(self.scorer.score(metrics).dimensions["schlaf"].score, 3.0)

    def test_scores_stay_in_range(self):
        metrics = normalize(
            hrv={"wellnessData": [{"lastNightAvg": 500, "sevenDayAvg": 10, "status": "low"}]},
            steps={"totalSteps": 90000},
            stress={"wellnessData": [{"value": 100}]},
            body_battery={"wellnessData": [{"value": 100, "charged": 100, "drained": 0}]},
        )
        result = self.scorer.score(metrics)
        for name, dimension in result.dimensions.items():
            self.assertGreaterEqual(dimension.score, 0, name)
            self.assertLessEqual(dimension.score, 3, name)
        self.assertLessEqual(result.total, 21)

    def test_journal_inputs(self):
        journal = SimpleNamespace(
            werte_zufriedenheit=10,
            tag_bewertung=10,
            sport_heute=True,
            meditation_heute=False,
            stress_level=1,
            alkohol_konsum="kein",
            schlafqualitaet="sehr_gut",
        )
        result = self.scorer.score(NormalizedDailyMetrics(), journal)
        self.assertEqual(result.dimensions["soul"].score, 3.0)
        self.assertEqual(result.dimensions["koerper"].score, 3.0)
        self.assertEqual(result.dimensions["schlaf"].score, 3.0)
        self.assertEqual(result.dimensions["regeneration"].score, 3.0)
        # stress 1/10 maps to 3.0, no meditation to 1.0
        self.assertEqual(result.dimensions["mind"].score, 2.0)

    def test_trend_against_previous(self):
        previous = self.scorer.score(NormalizedDailyMetrics())
        metrics = normalize(steps={"totalSteps": 10000})
        result = self.scorer.score(metrics, previous=previous)
        self.assertEqual(result.dimensions["koerper"].trend, "improving")
        self.assertEqual(result.dimensions["soul"].trend, "stable")

    def test_trend_and_assessment_helpers(self):
        self.assertEqual(trend(2.0, None), "stable")
        self.assertEqual(trend(2.0, 2.1), "stable")
        self.assertEqual(trend(1.5, 2.0), "declining")
        self.assertEqual(overall_assessment(18), "Excellent overall health status")
        self.assertEqual(overall_assessment(15.5), "Good health status with room for optimization")
        self.assertEqual(overall_assessment(12), "Moderate health status - action needed")


class TestAnalysisEngine(unittest.TestCase):
    def setUp(self):
        self.db = make_session_factory()()
        self.store = RawDataStore(self.db)
        self.engine = AnalysisEngine(self.store)

    def tearDown(self):
        self.db.close()

    def test_empty_day(self):
        result = self.engine.run_full_analysis("u1", date(2024, 6, 15), now=NOW)
        self.assertEqual(result.patterns, [])
        self.assertEqual(result.recommendations, [])
        self.assertEqual(result.alerts, [])
        self.assertEqual(result.framework.total, 10.5)

    def test_context(self):
        context = self.engine.run_full_analysis("u1", date(2024, 6, 15), "weekly", now=NOW).context
        self.assertEqual(context.analysis_type, "weekly")
        self.assertEqual(context.day_of_week, 5)
        self.assertTrue(context.is_weekend)
        self.assertEqual(context.seasonality, "summer")

    def test_seasons(self):
        self.assertEqual(seasonality(date(2024, 1, 10)), "winter")
        self.assertEqual(seasonality(date(2024, 4, 10)), "spring")
        self.assertEqual(seasonality(date(2024, 10, 10)), "autumn")
        self.assertEqual(seasonality(date(2024, 12, 10)), "winter")

    def test_unknown_type(self):
        with self.assertRaises(ValueError):
            self.engine.run_full_analysis("u1", date(2024, 6, 15), "monthly")

    def test_stored_records_drive_rules(self):
        day = date(2024, 6, 14)
        self.store.insert("u1", day, "hrv", {"wellnessData": [{"lastNightAvg": 22}]})
        self.store.insert("u1", day, "sleep", {"dailySleepDTO": {"sleepTimeSeconds": 18000}})
        self.store.insert("u2", day, "stress", {"wellnessData": [{"value": 90}]})

        result = self.engine.run_full_analysis("u1", day, now=NOW)
        self.assertEqual([p.type for p in result.patterns], ["sleep_hrv_correlation"])
        self.assertEqual([r.priority for r in result.recommendations], [1, 2])
        self.assertEqual(len(result.alerts), 1)

    def test_journal_feeds_framework(self):
        day = date(2024, 6, 14)
        self.db.add(DailyMetrics(user_id="u1", metric_date=day, werte_zufriedenheit=10, tag_bewertung=10))
        self.db.add(DailyMetrics(user_id="u1", metric_date=day - timedelta(days=1),
                                 werte_zufriedenheit=1, tag_bewertung=1))
        self.db.commit()

        soul = self.engine.run_full_analysis("u1", day, now=NOW).framework.dimensions["soul"]
        self.assertEqual(soul.score, 3.0)
        self.assertEqual(soul.trend, "improving")

    def test_serializes_camel_case(self):
        day = date(2024, 6, 14)
        self.store.insert("u1", day, "hrv", {"wellnessData": [{"lastNightAvg": 20}]})
        payload = self.engine.run_full_analysis("u1", day, now=NOW).model_dump(by_alias=True)
        self.assertIn("expectedROI", payload["recommendations"][0])
        self.assertIn("isWeekend", payload["context"])


if __name__ == "__main__":
    unittest.main()
