"""
Deterministic stand-in ledger for development and tests.

Only used when fixtures are explicitly allowed (report.py --allow-fixtures
or SCORESQUARE_DEV_FIXTURES=1). Production refreshes never fall back here.
"""
from scoresquare.models import Address, GameRecord, TicketRecord

FIXTURE_ADDRESSES = (
    "0x742d35Cc6634C0532925a3b8D4C9db96C4b4d8b6",
    "0x1234567890123456789012345678901234567890",
    "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd",
    "0x1111111111111111111111111111111111111111",
    "0x2222222222222222222222222222222222222222",
)

FIXTURE_SQUARE_PRICE_WEI = 1_000_000_000_000_000  # 0.001 ETH


def _tickets(game_id, buyers):
    return tuple(
        TicketRecord(game_id=game_id, buyer_address=Address(buyer),
                     square_index=i, purchased_at=1_735_700_000 + i)
        for i, buyer in enumerate(buyers)
    )


def fixture_games() -> list[GameRecord]:
    a, b, c, d, e = FIXTURE_ADDRESSES
    return [
        GameRecord(
            game_id="3",
            event_id="eng_1_ARS_CHE_1735732800",
            deployer_address=Address(a),
            created_at=1_735_720_000,
            square_price_wei=FIXTURE_SQUARE_PRICE_WEI,
            tickets=_tickets("3", [b, b, c, d]),
        ),
        GameRecord(
            game_id="2",
            event_id="esp_1_RMA_BAR_1735646400",
            deployer_address=Address(b),
            created_at=1_735_640_000,
            square_price_wei=FIXTURE_SQUARE_PRICE_WEI,
            tickets=_tickets("2", [a, c, e]),
        ),
        GameRecord(
            game_id="1",
            event_id="eng_1_LIV_MCI_1735560000",
            deployer_address=Address(a),
            created_at=1_735_550_000,
            refunded=True,
            square_price_wei=FIXTURE_SQUARE_PRICE_WEI,
            tickets=_tickets("1", [e, e]),
        ),
    ]
