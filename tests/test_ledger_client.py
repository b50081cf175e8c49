from __future__ import annotations

import unittest
from unittest.mock import MagicMock

import requests

from scoresquare.errors import SourceUnavailable
from scoresquare.ledger_client import GameLedgerClient


def _response(payload=None, status=200, json_error=None):
    resp = MagicMock()
    resp.ok = 200 <= status < 400
    resp.status_code = status
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = payload
    return resp


def _game(game_id, *, price="1000000000000000", created=1_700_000_000, tickets=None, **extra):
    game = {
        "id": f"0xgame{game_id}",
        "gameId": str(game_id),
        "eventId": f"eng_1_ARS_CHE_{game_id}",
        "deployer": "0xDEPLOYER",
        "squarePrice": price,
        "createdAt": str(created),
        "refunded": False,
        "prizeClaimed": False,
        "tickets": tickets if tickets is not None else [],
    }
    game.update(extra)
    return game


def _ticket(buyer, square, purchased=1_700_000_100):
    return {"buyer": buyer, "squareIndex": square, "purchasedAt": str(purchased)}


def _page(*games):
    return _response({"data": {"games": list(games)}})


class TestGameLedgerClient(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = GameLedgerClient("https://subgraph.test/query", session=self.session)

    def test_games_are_converted_to_records(self):
        self.session.post.return_value = _page(
            _game(1, tickets=[_ticket("0xBUYER", 0), _ticket("0xbuyer", 7)]),
        )

        (game,) = self.client.fetch_games()

        self.assertEqual(game.game_id, "1")
        self.assertEqual(game.deployer_address, "0xdeployer")
        self.assertEqual(game.square_price_wei, 10 ** 15)
        self.assertEqual([t.buyer_address for t in game.tickets], ["0xbuyer", "0xbuyer"])
        self.assertEqual([t.square_index for t in game.tickets], [0, 7])

        body = self.session.post.call_args.kwargs["json"]
        self.assertIn("games(", body["query"])
        self.assertEqual(body["variables"], {"first": 1000, "skip": 0})

    def test_free_games_are_filtered(self):
        self.session.post.return_value = _page(_game(1, price="0"), _game(2))

        games = self.client.fetch_games()

        self.assertEqual([g.game_id for g in games], ["2"])

    def test_newest_game_first(self):
        self.session.post.return_value = _page(
            _game(1, created=100), _game(2, created=300), _game(3, created=200))

        games = self.client.fetch_games()

        self.assertEqual([g.game_id for g in games], ["2", "3", "1"])

    def test_duplicate_square_is_dropped(self):
        self.session.post.return_value = _page(
            _game(1, tickets=[_ticket("0xaa", 4), _ticket("0xbb", 4), _ticket(None, 5)]))

        (game,) = self.client.fetch_games()

        self.assertEqual([t.buyer_address for t in game.tickets], ["0xaa"])

    def test_null_tickets_become_empty(self):
        game = _game(1)
        game["tickets"] = None
        self.session.post.return_value = _page(game)

        (game,) = self.client.fetch_games()

        self.assertEqual(game.tickets, ())

    def test_removed_endpoint_is_source_unavailable(self):
        self.session.post.return_value = _response(status=404)

        with self.assertRaises(SourceUnavailable):
            self.client.fetch_games()

    def test_server_error_is_source_unavailable(self):
        self.session.post.return_value = _response(status=502)

        with self.assertRaises(SourceUnavailable):
            self.client.fetch_games()

    def test_connection_error_is_source_unavailable(self):
        self.session.post.side_effect = requests.ConnectionError("no route to host")

        with self.assertRaises(SourceUnavailable):
            self.client.fetch_games()

    def test_graphql_errors_are_source_unavailable(self):
        self.session.post.return_value = _response(
            {"data": None, "errors": [{"message": "deployment not found"}]})

        with self.assertRaises(SourceUnavailable) as ctx:
            self.client.fetch_games()

        self.assertIn("deployment not found", str(ctx.exception))

    def test_invalid_json_is_source_unavailable(self):
        self.session.post.return_value = _response(json_error=ValueError("not json"))

        with self.assertRaises(SourceUnavailable):
            self.client.fetch_games()

    def test_missing_data_is_source_unavailable(self):
        self.session.post.return_value = _response({})

        with self.assertRaises(SourceUnavailable):
            self.client.fetch_games()

    def test_fetch_all_games_pages_until_short_page(self):
        self.session.post.side_effect = [
            _page(_game(5, created=500), _game(4, created=400)),
            _page(_game(4, created=400), _game(3, created=300)),
            _page(_game(2, created=200)),
        ]

        games = self.client.fetch_all_games(page_size=2)

        self.assertEqual([g.game_id for g in games], ["5", "4", "3", "2"])
        skips = [c.kwargs["json"]["variables"]["skip"] for c in self.session.post.call_args_list]
        self.assertEqual(skips, [0, 2, 4])

    def test_fetch_all_games_stops_at_max_pages(self):
        self.session.post.side_effect = [
            _page(_game(1), _game(2)),
            _page(_game(3), _game(4)),
        ]

        games = self.client.fetch_all_games(page_size=2, max_pages=2)

        self.assertEqual(len(games), 4)
        self.assertEqual(self.session.post.call_count, 2)

    def test_fetch_all_games_stops_at_skip_limit(self):
        self.session.post.side_effect = [
            _page(_game(6, created=600), _game(5, created=500)),
            _page(_game(4, created=400), _game(3, created=300)),
        ]

        games = self.client.fetch_all_games(page_size=2, max_skip=2)

        self.assertEqual([g.game_id for g in games], ["6", "5", "4", "3"])
        skips = [c.kwargs["json"]["variables"]["skip"] for c in self.session.post.call_args_list]
        self.assertEqual(skips, [0, 2])

    def test_default_paging_never_asks_past_skip_limit(self):
        full_page = _page(*[_game(i) for i in range(1000)])
        self.session.post.return_value = full_page

        self.client.fetch_all_games()

        skips = [c.kwargs["json"]["variables"]["skip"] for c in self.session.post.call_args_list]
        self.assertEqual(skips, [0, 1000, 2000, 3000, 4000, 5000])

    def test_failure_on_later_page_fails_the_fetch(self):
        self.session.post.side_effect = [
            _page(_game(1), _game(2)),
            _response(status=503),
        ]

        with self.assertRaises(SourceUnavailable):
            self.client.fetch_all_games(page_size=2)


if __name__ == "__main__":
    unittest.main()
