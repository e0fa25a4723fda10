import re

# Même contrôle que le formulaire public: quelque-chose@domaine.tld, sans espaces
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

def is_valid_email(v: str) -> bool:
    return bool(EMAIL_RE.match((v or "").strip()))

def is_blank(v) -> bool:
    return not str(v or "").strip()
