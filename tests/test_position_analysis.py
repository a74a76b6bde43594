import os
import unittest
from datetime import datetime, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import models  # noqa: F401
from database import Base, SessionLocal, engine
from models.position import PositionAnalysis
from schemas.position import PositionCreate
from services.position_analysis import normalize_analysis
from services.position_service import (
    PositionError,
    create_position,
    delete_position,
    delete_position_analysis,
    get_position,
    upsert_position_analysis,
)


def _analysis(**overrides):
    data = {
        "trend": "bullish",
        "targets": {"tp1": "110 USD", "tp2": "  ", "tp3": "130 USD"},
        "stopLoss": "90 USD",
        "summary": "Breakout above resistance",
        "entryStrategy": "level",
    }
    data.update(overrides)
    return data


class NormalizeAnalysisTests(unittest.TestCase):
    def test_full_payload(self) -> None:
        values = normalize_analysis(
            _analysis(
                trend=" Bearish ",
                analysisImage=" https://img.example/chart.png ",
                completed=True,
                completionNote=" Take profit reached ",
                completionDate="2024-01-10T12:00:00.000Z",
                positionClosed=True,
                positionClosedNote="Closed manually",
                positionClosedDate="2024-01-11T08:30:00+00:00",
                entryStrategy="candlePattern",
            )
        )
        self.assertEqual(values["trend"], "bearish")
        self.assertEqual(values["target_tp1"], "110 USD")
        self.assertIsNone(values["target_tp2"])
        self.assertEqual(values["target_tp3"], "130 USD")
        self.assertEqual(values["analysis_image"], "https://img.example/chart.png")
        self.assertTrue(values["completed"])
        self.assertEqual(values["completion_note"], "Take profit reached")
        self.assertEqual(values["completion_date"], datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc))
        self.assertTrue(values["position_closed"])
        self.assertEqual(values["position_closed_note"], "Closed manually")
        self.assertEqual(values["position_closed_date"], datetime(2024, 1, 11, 8, 30, tzinfo=timezone.utc))
        self.assertEqual(values["entry_strategy"], "candlePattern")

    def test_notes_and_dates_need_their_flags(self) -> None:
        values = normalize_analysis(
            _analysis(completionNote="ignored", completionDate="2024-01-10", positionClosedNote="ignored")
        )
        self.assertFalse(values["completed"])
        self.assertIsNone(values["completion_note"])
        self.assertIsNone(values["completion_date"])
        self.assertFalse(values["position_closed"])
        self.assertIsNone(values["position_closed_note"])

    def test_lenient_fields(self) -> None:
        values = normalize_analysis(
            _analysis(targets="n/a", entryStrategy="breakout", completed=True, completionDate="yesterday")
        )
        self.assertIsNone(values["target_tp1"])
        self.assertEqual(values["entry_strategy"], "level")
        self.assertIsNone(values["completion_date"])

    def test_required_fields(self) -> None:
        cases = [
            (None, "INVALID_ANALYSIS"),
            (["bullish"], "INVALID_ANALYSIS"),
            (_analysis(trend="sideways"), "INVALID_ANALYSIS_TREND"),
            (_analysis(stopLoss=" "), "INVALID_ANALYSIS_STOP_LOSS"),
            (_analysis(stopLoss=90), "INVALID_ANALYSIS_STOP_LOSS"),
            (_analysis(summary=""), "INVALID_ANALYSIS_SUMMARY"),
        ]
        for payload, code in cases:
            with self.subTest(code=code, payload=payload):
                with self.assertRaises(PositionError) as ctx:
                    normalize_analysis(payload)
                self.assertEqual(ctx.exception.code, code)

        with self.assertRaises(PositionError) as ctx:
            normalize_analysis(_analysis(trend="up"))
        self.assertEqual(ctx.exception.allowed, ["bullish", "bearish", "neutral"])


class PositionAnalysisRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        self.db = SessionLocal()

    def tearDown(self) -> None:
        self.db.close()

    def _create(self, **overrides):
        data = {"symbol": "TEST", "category": "stock", "positionType": "long", "purchasePrice": "100 USD"}
        data.update(overrides)
        return create_position(self.db, PositionCreate.model_validate(data))

    def test_create_with_analysis(self) -> None:
        position = self._create(analysis=_analysis())

        self.assertEqual(position.analysis.trend, "bullish")
        self.assertEqual(position.analysis.targets, {"tp1": "110 USD", "tp3": "130 USD"})
        self.assertEqual(position.analysis.stop_loss, "90 USD")
        self.assertEqual(position.analysis.entry_strategy, "level")
        self.assertFalse(position.analysis.completed)
        self.assertEqual(self.db.query(PositionAnalysis).count(), 1)

    def test_invalid_analysis_rejects_whole_create(self) -> None:
        with self.assertRaises(PositionError) as ctx:
            self._create(analysis=_analysis(summary=" "))
        self.assertEqual(ctx.exception.code, "INVALID_ANALYSIS_SUMMARY")
        self.assertIsNone(get_position(self.db, "test"))

    def test_upsert_then_replace_then_delete(self) -> None:
        self.assertIsNone(self._create().analysis)

        saved = upsert_position_analysis(self.db, "test", _analysis())
        self.assertEqual(saved.analysis.trend, "bullish")

        replaced = upsert_position_analysis(
            self.db,
            "TEST",
            {"trend": "neutral", "stopLoss": "95 USD", "summary": "Wait", "completed": True, "completionNote": "Done"},
        )
        self.assertEqual(replaced.analysis.trend, "neutral")
        self.assertEqual(replaced.analysis.targets, {})
        self.assertEqual(replaced.analysis.completion_note, "Done")
        self.assertEqual(self.db.query(PositionAnalysis).count(), 1)

        cleared = delete_position_analysis(self.db, str(saved.database_id))
        self.assertIsNone(cleared.analysis)
        self.assertEqual(self.db.query(PositionAnalysis).count(), 0)

        # deleting again is a no-op
        self.assertIsNone(delete_position_analysis(self.db, "test").analysis)

    def test_unknown_position(self) -> None:
        with self.assertRaises(PositionError) as ctx:
            upsert_position_analysis(self.db, "ghost", _analysis())
        self.assertEqual(ctx.exception.code, "POSITION_NOT_FOUND")

        with self.assertRaises(PositionError) as ctx:
            delete_position_analysis(self.db, "ghost")
        self.assertEqual(ctx.exception.code, "POSITION_NOT_FOUND")

    def test_invalid_payload_is_reported_before_lookup(self) -> None:
        with self.assertRaises(PositionError) as ctx:
            upsert_position_analysis(self.db, "ghost", {"trend": "bullish"})
        self.assertEqual(ctx.exception.code, "INVALID_ANALYSIS_STOP_LOSS")

    def test_deleting_position_removes_analysis(self) -> None:
        self._create(analysis=_analysis())
        delete_position(self.db, "test")
        self.assertEqual(self.db.query(PositionAnalysis).count(), 0)


if __name__ == "__main__":
    unittest.main()
