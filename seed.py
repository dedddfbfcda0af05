import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Wallet, WalletType


logger = logging.getLogger(__name__)

WALLET_CATALOG: list[tuple[str, WalletType]] = [
    ("gcash", WalletType.ewallet),
    ("maya", WalletType.ewallet),
    ("grabpay", WalletType.ewallet),
    ("shopeepay", WalletType.ewallet),
    ("coins", WalletType.ewallet),
    ("paypal", WalletType.ewallet),
    ("bpi", WalletType.bank),
    ("bdo", WalletType.bank),
    ("metrobank", WalletType.bank),
    ("landbank", WalletType.bank),
    ("unionbank", WalletType.bank),
    ("chinabank", WalletType.bank),
    ("pnb", WalletType.bank),
    ("securitybank", WalletType.bank),
    ("rcbc", WalletType.bank),
    ("eastwest", WalletType.bank),
    ("cimb", WalletType.bank),
    ("ing", WalletType.bank),
    ("gotyme", WalletType.bank),
    ("tonik", WalletType.bank),
    ("seabank", WalletType.bank),
    ("maya-bank", WalletType.bank),
    ("cash", WalletType.cash),
    ("piggy-bank", WalletType.cash),
    ("other", WalletType.other),
]


def seed_wallets(session: Session) -> int:
    """Upsert the wallet catalog by slug. Returns the number of new wallets."""
    existing = {
        wallet.slug: wallet for wallet in session.scalars(select(Wallet)).all()
    }
    created = 0
    for slug, wallet_type in WALLET_CATALOG:
        logo = f"/wallets/{slug}.png"
        wallet = existing.get(slug)
        if wallet:
            wallet.logo = logo
            wallet.type = wallet_type
            continue
        session.add(Wallet(slug=slug, logo=logo, type=wallet_type, is_active=True))
        created += 1
    session.commit()
    logger.info(f"wallet_seed: created={created} total={len(WALLET_CATALOG)}")
    return created


if __name__ == "__main__":
    from database import session_scope

    logging.basicConfig(level=logging.INFO)
    with session_scope() as session:
        seed_wallets(session)
