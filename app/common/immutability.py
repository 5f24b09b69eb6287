"""
Inmutabilidad a nivel ORM.

- LedgerEntry: solo inserción. Después de insertado únicamente pueden
  cambiar voided/voided_at/void_reason, y solo una vez. No se borra.
- Invoice autorizada: importes, receptor e ítems congelados. Solo puede
  acumular notas de crédito y pasar a voided.

Los listeners se registran una vez al importar la aplicación.
"""
import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from app.common.exceptions import IntegrityViolationError

logger = logging.getLogger(__name__)

_LEDGER_VOID_FIELDS = {"voided", "voided_at", "void_reason"}
_INVOICE_MUTABLE_FIELDS = {
    "authorization_state", "credited_amount", "void_reason", "updated_at", "updated_by",
}

_registered = False


def _changed_columns(target):
    state = inspect(target)
    return {
        attr.key for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


def _check_ledger_entry_update(mapper, connection, target):
    changed = _changed_columns(target)
    forbidden = changed - _LEDGER_VOID_FIELDS
    if forbidden:
        raise IntegrityViolationError(
            f"Intento de modificar el asiento {target.id}: {sorted(forbidden)}"
        )
    voided_history = get_history(target, "voided")
    if voided_history.deleted and voided_history.deleted[0]:
        raise IntegrityViolationError(f"Intento de rehabilitar el asiento anulado {target.id}")


def _check_ledger_entry_delete(mapper, connection, target):
    raise IntegrityViolationError(f"Intento de borrar el asiento {target.id}")


def _was_authorized(target) -> bool:
    from app.modules.invoices.models import AuthorizationState

    history = get_history(target, "authorization_state")
    previous = history.deleted[0] if history.deleted else target.authorization_state
    return previous in (AuthorizationState.AUTHORIZED, AuthorizationState.VOIDED)


def _check_invoice_update(mapper, connection, target):
    from app.modules.invoices.models import AuthorizationState

    if not _was_authorized(target):
        return

    forbidden = _changed_columns(target) - _INVOICE_MUTABLE_FIELDS
    if forbidden:
        raise IntegrityViolationError(
            f"Intento de modificar la factura autorizada {target.number}: {sorted(forbidden)}"
        )
    history = get_history(target, "authorization_state")
    if history.added and history.added[0] != AuthorizationState.VOIDED:
        raise IntegrityViolationError(
            f"Transición ilegal de la factura {target.number} a {history.added[0].value}"
        )


def _check_invoice_delete(mapper, connection, target):
    if _was_authorized(target):
        raise IntegrityViolationError(f"Intento de borrar la factura autorizada {target.number}")


def _check_invoice_item_change(mapper, connection, target):
    from app.modules.invoices.models import AuthorizationState

    invoice = target.invoice
    if invoice is None:
        return
    if _was_authorized(invoice) and invoice.authorization_state != AuthorizationState.DRAFT:
        raise IntegrityViolationError(
            f"Intento de modificar ítems de la factura autorizada {invoice.number}"
        )


def register_immutability_listeners():
    global _registered
    if _registered:
        return

    from app.modules.ledger.models import LedgerEntry
    from app.modules.invoices.models import Invoice, InvoiceItem

    event.listen(LedgerEntry, "before_update", _check_ledger_entry_update)
    event.listen(LedgerEntry, "before_delete", _check_ledger_entry_delete)
    event.listen(Invoice, "before_update", _check_invoice_update)
    event.listen(Invoice, "before_delete", _check_invoice_delete)
    event.listen(InvoiceItem, "before_insert", _check_invoice_item_change)
    event.listen(InvoiceItem, "before_update", _check_invoice_item_change)
    event.listen(InvoiceItem, "before_delete", _check_invoice_item_change)

    _registered = True
    logger.debug("Listeners de inmutabilidad registrados")
