"""
Known bank description patterns for popular subscription services.
`*` is a wildcard; matching is anchored at the start and case-insensitive.
"""
import logging
from typing import List, Tuple

from sqlalchemy.orm import Session

from app.models import MerchantAlias

logger = logging.getLogger(__name__)


MERCHANT_ALIASES: List[Tuple[str, str]] = [
    ("NETFLIX*", "Netflix"),
    ("SPOTIFY*", "Spotify"),
    ("AMAZON PRIME*", "Amazon Prime"),
    ("AMZN PRIME*", "Amazon Prime"),
    ("PRIME VIDEO*", "Amazon Prime Video"),
    ("APPLE.COM/BILL*", "Apple Services"),
    ("HULU*", "Hulu"),
    ("HBO MAX*", "HBO Max"),
    ("MAX.COM*", "Max"),
    ("DISNEY PLUS*", "Disney+"),
    ("DISNEYPLUS*", "Disney+"),
    ("DROPBOX*", "Dropbox"),
    ("GITHUB*", "GitHub"),
    ("GOOGLE *STORAGE*", "Google One"),
    ("GOOGLE*YOUTUBE*", "YouTube Premium"),
    ("YOUTUBE PREMIUM*", "YouTube Premium"),
    ("MICROSOFT*XBOX*", "Xbox Game Pass"),
    ("XBOX*", "Xbox Game Pass"),
    ("PLAYSTATION*", "PlayStation Plus"),
    ("SONY PLAYSTATION*", "PlayStation Plus"),
    ("ADOBE*", "Adobe Creative Cloud"),
    ("CHATGPT*", "ChatGPT Plus"),
    ("OPENAI*", "OpenAI"),
    ("NOTION*", "Notion"),
    ("SLACK*", "Slack"),
    ("ZOOM.US*", "Zoom"),
    ("LINKEDIN*PREMIUM*", "LinkedIn Premium"),
    ("AUDIBLE*", "Audible"),
    ("KINDLE*", "Kindle Unlimited"),
    ("PARAMOUNT+*", "Paramount+"),
    ("PARAMOUNTPLUS*", "Paramount+"),
    ("PEACOCK*", "Peacock"),
    ("CRUNCHYROLL*", "Crunchyroll"),
    ("NORDVPN*", "NordVPN"),
    ("EXPRESSVPN*", "ExpressVPN"),
    ("SURFSHARK*", "Surfshark"),
    ("1PASSWORD*", "1Password"),
    ("LASTPASS*", "LastPass"),
    ("BITWARDEN*", "Bitwarden"),
    ("GRAMMARLY*", "Grammarly"),
    ("CANVA*", "Canva"),
    ("FIGMA*", "Figma"),
    ("MAILCHIMP*", "Mailchimp"),
    ("EVERNOTE*", "Evernote"),
    ("TODOIST*", "Todoist"),
    ("HEADSPACE*", "Headspace"),
    ("CALM.COM*", "Calm"),
    ("DUOLINGO*", "Duolingo"),
    ("MASTERCLASS*", "MasterClass"),
    ("SKILLSHARE*", "Skillshare"),
]


def seed_merchant_aliases(db: Session) -> int:
    """Upsert the known aliases by pattern. Returns the number of rows written."""
    existing = {alias.bank_pattern: alias for alias in db.query(MerchantAlias).all()}
    written = 0
    for pattern, service_name in MERCHANT_ALIASES:
        alias = existing.get(pattern)
        if alias is None:
            db.add(MerchantAlias(bank_pattern=pattern, service_name=service_name))
            written += 1
        elif alias.service_name != service_name:
            alias.service_name = service_name
            written += 1
    db.commit()
    logger.info(f"Seeded {written} merchant aliases ({len(MERCHANT_ALIASES)} known)")
    return written
