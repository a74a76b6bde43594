import os
import unittest

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["RATE_LIMIT_ENABLED"] = "0"

import httpx
from fastapi.testclient import TestClient

from database import Base, engine
from main import app
from routers.position_routes import get_quote_service
from services.tradingview_service import Quote, QuoteProviderError, TradingViewService


class _FakeQuotes:
    def __init__(self, quotes=None, exc: Exception | None = None):
        self.quotes = quotes or []
        self.exc = exc
        self.calls: list[list[str]] = []

    async def fetch_quotes(self, symbols):
        self.calls.append(list(symbols))
        if self.exc is not None:
            raise self.exc
        return self.quotes


class _ScannerQuotes:
    """Real adapter answering from an in-memory scanner."""

    def __init__(self, payload):
        self.payload = payload
        self.service = TradingViewService()

    async def fetch_quotes(self, symbols):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=self.payload)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await self.service.fetch_quotes(symbols, client=client)


class PositionRoutesTests(unittest.TestCase):
    def setUp(self) -> None:
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        self.quotes = _FakeQuotes()
        app.dependency_overrides[get_quote_service] = lambda: self.quotes
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _create(self, **overrides):
        payload = {
            "symbol": "TEST",
            "category": "stock",
            "positionType": "long",
            "purchasePrice": "100 USD",
        }
        payload.update(overrides)
        return self.client.post("/api/positions", json=payload)

    def test_create_then_list_with_live_quote(self) -> None:
        created = self._create()
        self.assertEqual(created.status_code, 201)
        body = created.json()["data"]
        self.assertEqual(body["slug"], "test")
        self.assertEqual(body["id"], "test")
        self.assertEqual(body["quoteSymbol"], "TEST")
        self.assertEqual(body["currentPrice"], "100 USD")
        self.assertEqual(body["returnValue"], 0)
        self.assertEqual(body["return"], "0.0%")
        self.assertEqual(body["categoryName"], "Akcje")
        self.assertIn("databaseId", body)

        self.quotes.quotes = [Quote(symbol="TEST", price=110, currency="USD")]
        listed = self.client.get("/api/positions")
        self.assertEqual(listed.status_code, 200)
        [position] = listed.json()["data"]
        self.assertEqual(position["currentPriceValue"], 110)
        self.assertAlmostEqual(position["returnValue"], 10.0)
        self.assertEqual(position["return"], "+10.0%")
        self.assertEqual(position["currentPrice"], "110,00 USD")
        self.assertEqual(self.quotes.calls, [["TEST"]])

        # listing never writes the overlay back
        self.quotes.quotes = []
        [stored] = self.client.get("/api/positions").json()["data"]
        self.assertEqual(stored["currentPriceValue"], 100)
        self.assertEqual(stored["returnValue"], 0)

    def test_provider_outage_still_lists(self) -> None:
        self._create()
        self.quotes.exc = QuoteProviderError(503, "down")

        response = self.client.get("/api/positions")
        self.assertEqual(response.status_code, 200)
        [position] = response.json()["data"]
        self.assertEqual(position["currentPrice"], "100 USD")
        self.assertEqual(position["currentPriceValue"], 100)
        self.assertEqual(position["return"], "0.0%")

    def test_validation_errors(self) -> None:
        response = self._create(category="bonds")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {
                "error": "Invalid category value",
                "code": "INVALID_CATEGORY",
                "allowed": ["stock", "commodity", "hedge", "cash", "cryptocurrency"],
            },
        )

        response = self._create(symbol="")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_SYMBOL")
        self.assertNotIn("allowed", response.json())

    def test_duplicate_symbol_conflict(self) -> None:
        self.assertEqual(self._create().status_code, 201)

        response = self._create(symbol="test")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "POSITION_EXISTS")
        self.assertEqual(len(self.client.get("/api/positions").json()["data"]), 1)

    def test_get_update_delete(self) -> None:
        database_id = self._create().json()["data"]["databaseId"]

        self.quotes.quotes = [Quote(symbol="NASDAQ:TEST", price=90.0, currency="USD")]
        patched = self.client.patch("/api/positions/test", json={"quoteSymbol": "nasdaq:test"})
        self.assertEqual(patched.status_code, 200)
        self.assertEqual(patched.json()["data"]["quoteSymbol"], "NASDAQ:TEST")

        single = self.client.get(f"/api/positions/{database_id}")
        self.assertEqual(single.status_code, 200)
        self.assertEqual(single.json()["data"]["return"], "-10.0%")

        self.assertEqual(
            self.client.patch("/api/positions/test", json={"positionType": "flat"}).status_code,
            400,
        )

        deleted = self.client.delete("/api/positions/test")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(deleted.json(), {"success": True, "data": {"id": database_id, "slug": "test"}})
        self.assertEqual(self.client.get("/api/positions").json()["data"], [])

    def test_out_of_range_provider_price_still_lists(self) -> None:
        self._create()
        scanner = _ScannerQuotes({"data": [{"s": "TEST", "d": [10**400, "USD"]}]})
        app.dependency_overrides[get_quote_service] = lambda: scanner

        response = self.client.get("/api/positions")
        self.assertEqual(response.status_code, 200)
        [position] = response.json()["data"]
        self.assertEqual(position["currentPriceValue"], 100)
        self.assertEqual(position["return"], "0.0%")

        self.assertEqual(self.client.get("/api/positions/test").status_code, 200)

    def test_non_string_fields_get_coded_errors(self) -> None:
        response = self._create(purchasePrice=100)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Purchase price is required", "code": "INVALID_PURCHASE_PRICE"})

        response = self._create(symbol=42)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_SYMBOL")

        self.assertEqual(self._create().status_code, 201)
        response = self.client.patch("/api/positions/test", json={"category": 3})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_CATEGORY")
        self.assertNotIn("detail", response.json())

    def test_position_size(self) -> None:
        response = self._create(positionSizeType="capital", positionSizeLabel="1000 USD")
        self.assertEqual(response.status_code, 201)
        body = response.json()["data"]
        self.assertEqual(body["positionSizeType"], "capital")
        self.assertEqual(body["positionTotalValue"], 1000)
        self.assertEqual(body["positionTotalValueLabel"], "1 000,00 USD")
        self.assertIsNone(body["positionSizePerPipValue"])

        response = self._create(symbol="BAD", positionSizeType="invalid")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid position size type")
        self.assertEqual(response.json()["allowed"], ["capital", "units", "pips"])

    def test_analysis_endpoints(self) -> None:
        created = self._create(
            analysis={"trend": "bullish", "stopLoss": "90 USD", "summary": "Baseline", "targets": {"tp1": "120 USD"}}
        ).json()["data"]
        self.assertEqual(created["analysis"]["trend"], "bullish")
        self.assertEqual(created["analysis"]["targets"], {"tp1": "120 USD"})
        self.assertEqual(created["analysis"]["entryStrategy"], "level")

        listed = self.client.get("/api/positions").json()["data"][0]
        self.assertEqual(listed["analysis"]["stopLoss"], "90 USD")

        updated = self.client.put(
            f"/api/positions/{created['databaseId']}/analysis",
            json={
                "trend": "bearish",
                "stopLoss": "95 USD",
                "summary": "Updated plan",
                "completed": True,
                "completionNote": "Take profit reached",
                "completionDate": "2024-01-10T12:00:00.000Z",
                "positionClosed": True,
                "positionClosedNote": "Closed manually",
                "entryStrategy": "candlePattern",
            },
        )
        self.assertEqual(updated.status_code, 200)
        analysis = updated.json()["data"]["analysis"]
        self.assertEqual(analysis["trend"], "bearish")
        self.assertEqual(analysis["summary"], "Updated plan")
        self.assertTrue(analysis["completed"])
        self.assertEqual(analysis["completionNote"], "Take profit reached")
        self.assertTrue(analysis["completionDate"].startswith("2024-01-10T12:00:00"))
        self.assertTrue(analysis["positionClosed"])
        self.assertEqual(analysis["entryStrategy"], "candlePattern")

        deleted = self.client.delete(f"/api/positions/{created['databaseId']}/analysis")
        self.assertEqual(deleted.status_code, 200)
        self.assertIsNone(deleted.json()["data"]["analysis"])

    def test_analysis_errors(self) -> None:
        self._create()

        response = self.client.put("/api/positions/test/analysis", json={"trend": "up", "stopLoss": "1", "summary": "x"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_ANALYSIS_TREND")
        self.assertEqual(response.json()["allowed"], ["bullish", "bearish", "neutral"])

        response = self.client.put("/api/positions/test/analysis", json=["bullish"])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_ANALYSIS")

        response = self.client.put(
            "/api/positions/ghost/analysis",
            json={"trend": "bullish", "stopLoss": "1", "summary": "x"},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.delete("/api/positions/ghost/analysis").status_code, 404)

    def test_unknown_position(self) -> None:
        for response in (
            self.client.get("/api/positions/ghost"),
            self.client.patch("/api/positions/ghost", json={"name": "x"}),
            self.client.delete("/api/positions/ghost"),
        ):
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json()["code"], "POSITION_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
