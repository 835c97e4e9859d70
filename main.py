import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from sqlalchemy.orm import Session

from config import get_settings
from csrf import CSRF_HEADER, generate_csrf_token, validate_csrf_token
from database import SessionLocal
from models import BillStatus, Budget, BudgetLog, Transaction
from scheduler import SchedulerManager
from schemas import BillIn, BillStatusIn, BudgetIn, TransactionIn
from services import (
    BillNotFound,
    BillService,
    BudgetNotFound,
    BudgetService,
    BudgetValidationError,
    RecurringService,
    TransactionNotFound,
    TransactionService,
    get_current_user_id,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Tracker")


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def require_csrf(request: Request) -> None:
    token = request.headers.get(CSRF_HEADER, "")
    if not validate_csrf_token(token, user_id=get_current_user_id()):
        logger.warning(f"csrf_rejected: method={request.method} path={request.url.path}")
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def budget_to_dict(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "title": budget.title,
        "amount_cents": budget.amount_cents,
        "currency": budget.currency,
        "from_rate": budget.from_rate,
        "to_rate": budget.to_rate,
        "recurrence": budget.recurrence,
        "start_date": budget.start_date,
        "category": budget.category,
        "created_at": budget.created_at,
    }


def log_to_dict(entry: BudgetLog) -> dict[str, object]:
    return {
        "id": entry.id,
        "budget_id": entry.budget_id,
        "action": entry.action.value,
        "changes": entry.changes,
        "reason": entry.reason,
        "timestamp": entry.timestamp,
    }


def transaction_to_dict(txn: Transaction) -> dict[str, object]:
    payload = {
        column.key: getattr(txn, column.key) for column in Transaction.__table__.columns
    }
    payload["is_bill"] = txn.is_bill
    payload["is_template"] = txn.is_template
    return payload


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/csrf-token")
def csrf_token():
    return {"csrf_token": generate_csrf_token(get_current_user_id())}


@app.get("/api/budgets")
def list_budgets(db: Session = Depends(get_db)):
    return [budget_to_dict(b) for b in BudgetService(db).list_all()]


@app.get("/api/budgets/progress")
def budget_progress(db: Session = Depends(get_db)):
    return BudgetService(db).get_budget_progress()


@app.get("/api/budgets/logs")
def budget_logs(db: Session = Depends(get_db)):
    return {"logs": [log_to_dict(entry) for entry in BudgetService(db).logs()]}


@app.post("/api/budgets", status_code=201, dependencies=[Depends(require_csrf)])
def create_budget(data: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).create(data)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return budget_to_dict(budget)


@app.put("/api/budgets/{budget_id}", dependencies=[Depends(require_csrf)])
def update_budget(budget_id: str, data: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).update(budget_id, data)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BudgetNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return budget_to_dict(budget)


@app.delete("/api/budgets/{budget_id}", dependencies=[Depends(require_csrf)])
def delete_budget(
    budget_id: str, reason: Optional[str] = None, db: Session = Depends(get_db)
):
    try:
        return BudgetService(db).delete(budget_id, reason)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BudgetNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/transactions")
def list_transactions(limit: int = 200, db: Session = Depends(get_db)):
    return [transaction_to_dict(t) for t in TransactionService(db).list(limit=limit)]


@app.post("/api/transactions", status_code=201, dependencies=[Depends(require_csrf)])
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    return transaction_to_dict(TransactionService(db).create(data))


@app.put("/api/transactions/{transaction_id}", dependencies=[Depends(require_csrf)])
def update_transaction(
    transaction_id: str, data: TransactionIn, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).update(transaction_id, data)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return transaction_to_dict(txn)


@app.delete("/api/transactions/{transaction_id}", dependencies=[Depends(require_csrf)])
def delete_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/recurring")
def list_recurring(db: Session = Depends(get_db)):
    return [transaction_to_dict(t) for t in RecurringService(db).list_templates()]


@app.post("/api/recurring/trigger", dependencies=[Depends(require_csrf)])
def trigger_recurring(db: Session = Depends(get_db)):
    return RecurringService(db).trigger()


@app.delete("/api/recurring/{template_id}", dependencies=[Depends(require_csrf)])
def delete_recurring(template_id: str, db: Session = Depends(get_db)):
    try:
        return RecurringService(db).delete_template(template_id)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TransactionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/bills")
def list_bills(status: Optional[BillStatus] = None, db: Session = Depends(get_db)):
    return [transaction_to_dict(b) for b in BillService(db).list(status)]


@app.get("/api/bills/overdue")
def overdue_bills(db: Session = Depends(get_db)):
    return [transaction_to_dict(b) for b in BillService(db).overdue()]


@app.get("/api/bills/upcoming")
def upcoming_bills(days: int = 7, db: Session = Depends(get_db)):
    return [transaction_to_dict(b) for b in BillService(db).upcoming(days=days)]


@app.get("/api/bills/stats")
def bill_stats(db: Session = Depends(get_db)):
    return BillService(db).stats()


@app.get("/api/bills/{bill_id}")
def get_bill(bill_id: str, db: Session = Depends(get_db)):
    try:
        return transaction_to_dict(BillService(db).get(bill_id))
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BillNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/api/bills", status_code=201, dependencies=[Depends(require_csrf)])
def create_bill(data: BillIn, db: Session = Depends(get_db)):
    return transaction_to_dict(BillService(db).create(data))


@app.put("/api/bills/{bill_id}", dependencies=[Depends(require_csrf)])
def update_bill(bill_id: str, data: BillIn, db: Session = Depends(get_db)):
    try:
        bill = BillService(db).update(bill_id, data)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BillNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return transaction_to_dict(bill)


@app.post("/api/bills/{bill_id}/status", dependencies=[Depends(require_csrf)])
def update_bill_status(bill_id: str, data: BillStatusIn, db: Session = Depends(get_db)):
    try:
        bill = BillService(db).set_status(bill_id, data.status)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BillNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return transaction_to_dict(bill)


@app.delete("/api/bills/{bill_id}", dependencies=[Depends(require_csrf)])
def delete_bill(bill_id: str, db: Session = Depends(get_db)):
    try:
        BillService(db).delete(bill_id)
    except BudgetValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BillNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Bill deleted successfully"}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
