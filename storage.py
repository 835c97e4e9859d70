from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Budget, BudgetLog, Transaction, TransactionType


class BudgetStore:
    """Queries and writes the budget engine needs, scoped to one session.

    Writes flush but do not commit; the calling service owns the transaction.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_budgets_by_user_id(self, user_id: int) -> list[Budget]:
        stmt = select(Budget).where(Budget.user_id == user_id).order_by(Budget.id)
        return list(self.session.scalars(stmt).all())

    def find_budget(self, user_id: int, budget_id: int) -> Optional[Budget]:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != user_id:
            return None
        return budget

    def create_budget(self, budget: Budget) -> Budget:
        self.session.add(budget)
        self.session.flush()
        return budget

    def update_budget(
        self, user_id: int, budget_id: int, fields: dict[str, Any]
    ) -> Optional[Budget]:
        budget = self.find_budget(user_id, budget_id)
        if budget is None:
            return None
        for name, value in fields.items():
            setattr(budget, name, value)
        self.session.flush()
        return budget

    def delete_budget(self, user_id: int, budget_id: int) -> Optional[Budget]:
        budget = self.find_budget(user_id, budget_id)
        if budget is None:
            return None
        self.session.delete(budget)
        self.session.flush()
        return budget

    def get_user_expenses(self, user_id: int) -> list[Transaction]:
        stmt = select(Transaction).where(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.expense,
        )
        return list(self.session.scalars(stmt).all())

    def find_instance(self, template_id: int, on_date: date) -> Optional[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.template_id == template_id,
                Transaction.date == on_date,
            )
            .limit(1)
        )
        return self.session.scalar(stmt)

    def insert_transaction(self, txn: Transaction) -> Transaction:
        self.session.add(txn)
        self.session.flush()
        return txn

    def append_change_log(self, entry: BudgetLog) -> BudgetLog:
        self.session.add(entry)
        self.session.flush()
        return entry

    def list_change_logs(self, user_id: int) -> list[BudgetLog]:
        stmt = (
            select(BudgetLog)
            .where(BudgetLog.user_id == user_id)
            .order_by(BudgetLog.timestamp.desc(), BudgetLog.id.desc())
        )
        return list(self.session.scalars(stmt).all())
