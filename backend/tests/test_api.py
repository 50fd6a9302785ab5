import unittest

from fastapi.testclient import TestClient

from timedchess.core.security import encrypt_identity
from timedchess.main import api_app
from timedchess.services.game_service import game_service


class ApiRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        game_service.registry.clear()
        self.client = TestClient(api_app)

    def tearDown(self) -> None:
        game_service.registry.clear()

    def test_health(self) -> None:
        response = self.client.get("/api/v1/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "games": 0})

    def test_missing_game_is_404(self) -> None:
        response = self.client.get("/api/v1/games/ghost")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "Game not found")

    def test_game_snapshot_uses_wire_names(self) -> None:
        game_service.start_game(
            "g1",
            white="alice",
            black="bob",
            title="Friendly",
            time_rule="5/3",
            creator_proof=encrypt_identity("alice"),
        )

        response = self.client.get("/api/v1/games/g1")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["gameId"], "g1")
        self.assertEqual(body["gameStatus"], "INITIALIZING")
        self.assertEqual(body["remainingWhiteTime"], 300_000)
        self.assertEqual(len(body["legalMoves"]), 20)


if __name__ == "__main__":
    unittest.main()
