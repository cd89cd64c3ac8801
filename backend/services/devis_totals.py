"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  OXA CRM - Totaux du devis                                                   ║
║                                                                              ║
║  total_ht          = Σ total des lignes (toutes zones)                       ║
║  total_tva         = total_ht × 20%  (taux unique au niveau document)        ║
║  total_ttc         = total_ht + total_tva                                    ║
║  prime_cee_deduite = prime estimée si mode "deduction", sinon 0              ║
║  net_a_payer       = total_ttc − prime_cee_deduite                           ║
║                                                                              ║
║  RÈGLE: recalcul TOTAL à chaque mutation, jamais de patch incrémental.       ║
║  Deux appels avec les mêmes entrées donnent exactement le même résultat.     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Iterable, Mapping, Any

from config import round2
from models.devis import CEEMode, CEEResult, DevisTotals, DevisZone

TVA_TAUX_DEVIS = 20.0
TVA_RATE_DEVIS = TVA_TAUX_DEVIS / 100


class TotalsInvariantError(Exception):
    """Les montants d'un document ne respectent pas total_ttc = total_ht + total_tva"""
    pass


def sum_lines(zones: Iterable[DevisZone]) -> float:
    return round2(sum(ligne.total for zone in zones for ligne in zone.lignes))


def sum_margins(zones: Iterable[DevisZone]) -> float:
    return round2(sum(ligne.marge for zone in zones for ligne in zone.lignes))


def compute_totals(zones: Iterable[DevisZone], cee_result: CEEResult, cee_mode: CEEMode) -> DevisTotals:
    """Recalcule l'ensemble des totaux du devis (fonction pure)"""
    total_ht = sum_lines(zones)
    total_tva = round2(total_ht * TVA_RATE_DEVIS)
    total_ttc = total_ht + total_tva

    prime_cee_deduite = cee_result.prime_estimee if CEEMode(cee_mode) == CEEMode.DEDUCTION else 0.0
    net_a_payer = round2(total_ttc - prime_cee_deduite)

    return DevisTotals(
        total_ht=total_ht,
        total_tva=total_tva,
        total_ttc=total_ttc,
        prime_cee_deduite=prime_cee_deduite,
        net_a_payer=net_a_payer,
    )


def check_totals_invariants(doc: Mapping[str, Any]) -> bool:
    """
    Vérifie les invariants de montants d'un document persisté.

    INVARIANTS:
    - total_tva = round2(total_ht × tva_taux / 100)
    - total_ttc = total_ht + total_tva (à 1 centime près, arrondis stockés)
    """
    total_ht = doc.get("total_ht", 0) or 0
    total_tva = doc.get("total_tva", 0) or 0
    total_ttc = doc.get("total_ttc", 0) or 0
    tva_taux = doc.get("tva_taux", TVA_TAUX_DEVIS) or 0

    if abs(round2(total_ht * tva_taux / 100) - total_tva) > 0.005:
        raise TotalsInvariantError(
            f"INVARIANT VIOLATION: total_tva={total_tva} != total_ht × {tva_taux}% "
            f"(devis {doc.get('numero', doc.get('id'))})"
        )
    if abs(total_ht + total_tva - total_ttc) > 0.005:
        raise TotalsInvariantError(
            f"INVARIANT VIOLATION: total_ttc={total_ttc} != total_ht + total_tva "
            f"(devis {doc.get('numero', doc.get('id'))})"
        )
    return True
