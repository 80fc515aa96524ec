"""Prompts sent to the chat model.

The emails are in French, so are the prompts.  Every prompt asks for a
single JSON object; the keys requested here are the ones
:mod:`formation_tracker.llm.parser` reads back.
"""

from __future__ import annotations

from ..models import EmailCategory

#: Longest body excerpt sent to the model, in characters.
MAX_BODY_CHARS = 12_000

CLASSIFICATION_SYSTEM_PROMPT = """\
Tu es un assistant spécialisé dans la classification d'emails professionnels \
provenant d'ORSYS, un organisme de formation.

Ton rôle est d'identifier le type d'email parmi les catégories suivantes :

- "convocation-inter" : Confirmation d'une formation inter-entreprise (dans les locaux ORSYS)
- "convocation-intra" : Confirmation d'une formation intra-entreprise (chez le client)
- "annulation" : Annulation d'une session de formation
- "bon-commande" : Confirmation anticipée d'une commande de formation (avant la convocation)
- "info-facturation" : Informations pour établir la facture après la formation
- "rappel" : Rappel concernant une formation à venir
- "demande-intra" : Demande de disponibilité ou proposition d'une formation intra
- "autre" : Email non pertinent pour le suivi des formations

Réponds UNIQUEMENT avec un objet JSON valide, sans texte avant ou après."""

EXTRACTION_SYSTEM_PROMPT = """\
Tu es un assistant qui extrait des données structurées d'emails ORSYS \
concernant des sessions de formation.

Règles :
- Les dates sont au format ISO 8601 (AAAA-MM-JJ).
- Utilise null pour toute information absente de l'email ; n'invente rien.
- Le code étendu de session ressemble à "GIAPA1" ou "BOAZCV2".

Réponds UNIQUEMENT avec un objet JSON valide, sans texte avant ou après."""


def _excerpt(body: str) -> str:
    return body.strip()[:MAX_BODY_CHARS]


def build_classification_prompt(subject: str, body: str) -> str:
    return f"""Classifie l'email suivant :

---
Sujet : {subject}
---
{_excerpt(body)}
---

Réponds avec ce format JSON :
{{
  "type": "{'|'.join(c.value for c in EmailCategory)}",
  "confidence": 0.0 à 1.0,
  "reason": "Explication courte de la classification"
}}"""


_COMMON_FIELDS = """\
  "title": "Intitulé de la formation",
  "extended_code": "Code étendu de la session",
  "start_date": "AAAA-MM-JJ",
  "end_date": "AAAA-MM-JJ\""""

_SCHEMAS: dict[EmailCategory, str] = {
    EmailCategory.INTER_CONFIRMATION: _COMMON_FIELDS
    + """,
  "dates": ["AAAA-MM-JJ", ...],
  "day_count": nombre de jours,
  "location": {"name": "Nom du centre", "address": "Adresse complète"},
  "participant_count": nombre,
  "participants": [{"name": "Nom", "email": "adresse email"}],
  "trainer_password": "Mot de passe DocAdmin formateur",
  "participant_password": "Mot de passe DocAdmin participants\"""",
    EmailCategory.INTRA_CONFIRMATION: _COMMON_FIELDS
    + """,
  "intra_reference": "Référence intra",
  "client": "Entreprise cliente",
  "dates": ["AAAA-MM-JJ", ...],
  "day_count": nombre de jours,
  "location": {"name": "Nom du site", "address": "Adresse complète", "room": "Salle"},
  "participant_count": nombre,
  "customization_level": "standard|spécifique|ultra-spécifique",
  "company_contact": {"name": "Contact sur site", "phone": "Téléphone", "email": "Email"},
  "trainer_password": "Mot de passe DocAdmin formateur",
  "participant_password": "Mot de passe DocAdmin participants\"""",
    EmailCategory.CANCELLATION: _COMMON_FIELDS
    + """,
  "location": "Lieu prévu",
  "cancellation_reason": "Raison de l'annulation\"""",
    EmailCategory.PURCHASE_ORDER: _COMMON_FIELDS
    + """,
  "intra_reference": "Référence intra",
  "order_reference": "Référence de commande",
  "client": "Entreprise cliente",
  "day_count": nombre de jours,
  "hour_count": nombre d'heures,
  "location": {"name": "Nom du site", "address": "Adresse"},
  "participant_count": nombre,
  "customization_level": "standard|spécifique|ultra-spécifique",
  "billing_entity": "Entité à facturer\"""",
    EmailCategory.BILLING_INFO: _COMMON_FIELDS
    + """,
  "day_count": nombre de jours,
  "billing_entity": "Entité à facturer",
  "rate": tarif journalier en euros,
  "expense_cap": plafond de frais en euros\"""",
}


def has_extraction_prompt(category: EmailCategory) -> bool:
    return category in _SCHEMAS


def build_extraction_prompt(category: EmailCategory, body: str) -> str | None:
    """User prompt extracting a *category* email, or None if nothing is extracted from it."""
    schema = _SCHEMAS.get(category)
    if schema is None:
        return None
    return f"""Extrais les informations de cet email ({category.value}) :

---
{_excerpt(body)}
---

Réponds avec ce format JSON :
{{
{schema}
}}"""
