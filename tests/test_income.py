import uuid
from datetime import datetime

import pytest
from sqlalchemy import update
from sqlalchemy.future import select

from incomesplit.core.exceptions import ConflictError, NotFoundError, ValidationError
from incomesplit.crud import crud_category, crud_income, crud_transaction, crud_user
from incomesplit.db.models.category import CategoryType
from incomesplit.db.models.transaction import (
    DistributionStatus,
    Transaction as TransactionModel,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)
from incomesplit.schemas.category import CategoryCreate
from incomesplit.schemas.income import IncomeCreate, IncomeUpdate
from incomesplit.schemas.transaction import TransactionCreate
from incomesplit.schemas.user import BudgetPreferences


def income_in(amount=1000.0, needs=50.0, wants=30.0, savings=20.0, **kwargs) -> IncomeCreate:
    data = {
        "description": "March Salary",
        "amount": amount,
        "date": datetime(2024, 3, 1, 9, 0),
        "distribution": {"needs": needs, "wants": wants, "savings": savings},
    }
    data.update(kwargs)
    return IncomeCreate(**data)


async def user_transactions(db, user_id):
    result = await db.execute(select(TransactionModel).filter(TransactionModel.user_id == user_id))
    return list(result.scalars().all())


class TestCreateIncome:

    async def test_creates_income_and_three_distributions(self, db, user):
        result = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        income = result.income

        assert income.transaction_type == TransactionType.income
        assert income.source == TransactionSource.manual
        assert income.status == TransactionStatus.categorized
        assert income.is_distribution is False
        assert income.is_editable is True
        assert income.currency == "INR"
        assert income.distribution_status == DistributionStatus.distributed

        expected = {"needs": 500.0, "wants": 300.0, "savings": 200.0}
        for role, child in result.distributed.items():
            assert child.amount == pytest.approx(expected[role])
            assert child.transaction_type == TransactionType[role]
            assert child.description == f"March Salary - {role.capitalize()} Allocation"
            assert child.source == TransactionSource.distribution
            assert child.is_distribution is True
            assert child.is_editable is False
            assert child.parent_transaction_id == income.id
            assert child.date == income.date
            assert child.currency == income.currency
            assert child.category_id == income.category_id
            assert income.get_distributed_id(role) == child.id

        assert len(await user_transactions(db, user.id)) == 4

    async def test_child_amounts_add_up_to_income(self, db, user):
        result = await crud_income.create_income(
            db, user_id=user.id, obj_in=income_in(amount=1234.56, needs=33.33, wants=33.33, savings=33.34)
        )
        total = sum(child.amount for child in result.distributed.values())
        assert total == pytest.approx(1234.56)

    async def test_missing_category_uses_salary(self, db, user):
        result = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        category = await crud_category.get_user_category(db, category_id=result.income.category_id, user_id=user.id)
        assert category.name == "Salary"
        assert category.type == CategoryType.income

    async def test_foreign_category_is_replaced_silently(self, db, user, other_user):
        foreign = await crud_category.create_category(
            db, obj_in=CategoryCreate(name="Bonus", type=CategoryType.income), user_id=other_user.id
        )
        result = await crud_income.create_income(db, user_id=user.id, obj_in=income_in(category_id=foreign.id))
        assert result.income.category_id != foreign.id
        category = await crud_category.get_user_category(db, category_id=result.income.category_id, user_id=user.id)
        assert category.name == "Salary"

    async def test_bucket_category_is_used_when_present(self, db, user):
        needs_bucket = await crud_category.create_category(
            db, obj_in=CategoryCreate(name="Needs Allocation", type=CategoryType.needs), user_id=user.id
        )
        result = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())

        assert result.distributed["needs"].category_id == needs_bucket.id
        assert result.distributed["wants"].category_id == result.income.category_id
        assert result.distributed["savings"].category_id == result.income.category_id

    async def test_explicit_currency_is_kept(self, db, user):
        result = await crud_income.create_income(db, user_id=user.id, obj_in=income_in(currency="USD"))
        assert result.income.currency == "USD"
        assert {child.currency for child in result.distributed.values()} == {"USD"}

    async def test_different_distribution_overwrites_preferences(self, db, user):
        await crud_income.create_income(db, user_id=user.id, obj_in=income_in(needs=60, wants=30, savings=10))
        assert user.percentages() == {"needs": 60, "wants": 30, "savings": 10}

    async def test_same_distribution_keeps_preferences(self, db, user, monkeypatch):
        calls = []

        async def spy(db, **kwargs):
            calls.append(kwargs)

        monkeypatch.setattr(crud_user, "set_budget_percentages", spy)
        await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        assert calls == []
        assert user.percentages() == {"needs": 50, "wants": 30, "savings": 20}

    async def test_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            await crud_income.create_income(db, user_id=uuid.uuid4(), obj_in=income_in())


class TestUpdateIncome:

    async def test_amount_change_uses_stored_preferences(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in(needs=60, wants=30, savings=10))
        await crud_user.update_budget_preferences(
            db,
            db_obj=user,
            obj_in=BudgetPreferences(needs={"percentage": 50}, wants={"percentage": 30}, savings={"percentage": 20}),
        )

        result = await crud_income.update_income(
            db, transaction_id=created.income.id, user_id=user.id, obj_in=IncomeUpdate(amount=2000)
        )

        # Полный пересчет от новой суммы по текущим предпочтениям, а не масштабирование 60/30/10
        assert result.income.amount == 2000
        assert result.distributed["needs"].amount == pytest.approx(1000)
        assert result.distributed["wants"].amount == pytest.approx(600)
        assert result.distributed["savings"].amount == pytest.approx(400)
        assert result.distributed["needs"].id == created.distributed["needs"].id

    async def test_explicit_distribution_overwrites_preferences(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())

        result = await crud_income.update_income(
            db,
            transaction_id=created.income.id,
            user_id=user.id,
            obj_in=IncomeUpdate(distribution={"needs": 70, "wants": 20, "savings": 10}),
        )

        assert result.distributed["needs"].amount == pytest.approx(700)
        assert result.distributed["wants"].amount == pytest.approx(200)
        assert result.distributed["savings"].amount == pytest.approx(100)
        assert user.percentages() == {"needs": 70, "wants": 20, "savings": 10}

    async def test_amount_and_distribution_change_together(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())

        result = await crud_income.update_income(
            db,
            transaction_id=created.income.id,
            user_id=user.id,
            obj_in=IncomeUpdate(amount=2000, distribution={"needs": 60, "wants": 20, "savings": 20}),
        )

        assert result.distributed["needs"].amount == pytest.approx(1200)
        assert result.distributed["wants"].amount == pytest.approx(400)
        assert result.distributed["savings"].amount == pytest.approx(400)

    async def test_update_without_distribution_keeps_preferences(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in(needs=60, wants=30, savings=10))
        await crud_income.update_income(
            db, transaction_id=created.income.id, user_id=user.id, obj_in=IncomeUpdate(amount=500)
        )
        assert user.percentages() == {"needs": 60, "wants": 30, "savings": 10}

    async def test_children_follow_description_date_and_currency(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        new_date = datetime(2024, 4, 1, 9, 0)

        result = await crud_income.update_income(
            db,
            transaction_id=created.income.id,
            user_id=user.id,
            obj_in=IncomeUpdate(description="April Salary", date=new_date, currency="EUR"),
        )

        for role, child in result.distributed.items():
            assert child.description == f"April Salary - {role.capitalize()} Allocation"
            assert child.date == new_date
            assert child.currency == "EUR"

    async def test_category_must_belong_to_user(self, db, user, other_user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        foreign = await crud_category.create_category(
            db, obj_in=CategoryCreate(name="Bonus", type=CategoryType.income), user_id=other_user.id
        )
        with pytest.raises(ValidationError) as exc_info:
            await crud_income.update_income(
                db, transaction_id=created.income.id, user_id=user.id, obj_in=IncomeUpdate(category_id=foreign.id)
            )
        assert exc_info.value.message == "Invalid category selected or category does not belong to user"

    async def test_not_found_cases(self, db, user, other_user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())

        with pytest.raises(NotFoundError):
            await crud_income.update_income(db, transaction_id=uuid.uuid4(), user_id=user.id, obj_in=IncomeUpdate())
        with pytest.raises(NotFoundError):
            await crud_income.update_income(
                db, transaction_id=created.income.id, user_id=other_user.id, obj_in=IncomeUpdate()
            )
        with pytest.raises(NotFoundError):
            await crud_income.update_income(
                db, transaction_id=created.distributed["needs"].id, user_id=user.id, obj_in=IncomeUpdate()
            )

    async def test_missing_distribution_is_recreated(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        income = created.income
        lost = created.distributed["wants"]

        await db.delete(lost)
        income.distributed_wants_id = None
        income.distribution_status = DistributionStatus.partially_failed
        await db.flush()

        result = await crud_income.update_income(
            db, transaction_id=income.id, user_id=user.id, obj_in=IncomeUpdate(amount=2000)
        )

        wants = result.distributed["wants"]
        assert wants.id != lost.id
        assert wants.amount == pytest.approx(600)
        assert wants.parent_transaction_id == income.id
        assert wants.is_editable is False
        assert income.distributed_wants_id == wants.id
        assert income.distribution_status == DistributionStatus.distributed
        assert len(await user_transactions(db, user.id)) == 4

    async def test_dangling_link_is_recreated(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        income = created.income
        income.distributed_savings_id = uuid.uuid4()
        await db.flush()

        result = await crud_income.update_income(db, transaction_id=income.id, user_id=user.id, obj_in=IncomeUpdate())

        assert result.distributed["savings"] is not None
        assert income.distributed_savings_id == result.distributed["savings"].id
        assert result.distributed["savings"].amount == pytest.approx(200)

    async def test_unlinked_distribution_is_adopted(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        income = created.income
        needs = created.distributed["needs"]
        income.distributed_needs_id = None
        income.distribution_status = DistributionStatus.partially_failed
        await db.flush()

        result = await crud_income.update_income(
            db, transaction_id=income.id, user_id=user.id, obj_in=IncomeUpdate(amount=2000)
        )

        assert result.distributed["needs"].id == needs.id
        assert income.distributed_needs_id == needs.id
        assert income.distribution_status == DistributionStatus.distributed
        children = [t for t in await user_transactions(db, user.id) if t.parent_transaction_id == income.id]
        assert len(children) == 3
        assert [t.amount for t in children if t.transaction_type == TransactionType.needs] == [pytest.approx(1000)]

    async def test_duplicate_unlinked_distribution_is_removed(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        income = created.income
        duplicate = TransactionModel(
            user_id=user.id,
            description="March Salary - Wants Allocation",
            amount=300,
            category_id=income.category_id,
            transaction_type=TransactionType.wants,
            date=income.date,
            currency=income.currency,
            source=TransactionSource.distribution,
            status=TransactionStatus.categorized,
            is_distribution=True,
            is_editable=False,
            parent_transaction_id=income.id,
        )
        db.add(duplicate)
        await db.flush()

        await crud_income.update_income(db, transaction_id=income.id, user_id=user.id, obj_in=IncomeUpdate(amount=2000))

        remaining = await user_transactions(db, user.id)
        assert duplicate.id not in {t.id for t in remaining}
        assert len(remaining) == 4
        assert income.distributed_wants_id == created.distributed["wants"].id

    async def test_stale_version_raises_conflict(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())

        # Другой запрос успел изменить доход
        await db.execute(
            update(TransactionModel)
            .where(TransactionModel.id == created.income.id)
            .values(version=TransactionModel.version + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(ConflictError):
            await crud_income.update_income(
                db, transaction_id=created.income.id, user_id=user.id, obj_in=IncomeUpdate(amount=2000)
            )


class TestDeleteIncome:

    async def test_removes_income_and_distributions(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        await crud_income.delete_income(db, transaction_id=created.income.id, user_id=user.id)
        assert await user_transactions(db, user.id) == []

    async def test_removes_unlinked_distribution(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        created.income.distributed_needs_id = None
        await db.flush()

        await crud_income.delete_income(db, transaction_id=created.income.id, user_id=user.id)
        assert await user_transactions(db, user.id) == []

    async def test_keeps_other_transactions(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        expense = await crud_transaction.create_transaction(
            db,
            obj_in=TransactionCreate(description="Rent", amount=400, transaction_type=TransactionType.needs),
            user=user,
        )
        await crud_income.delete_income(db, transaction_id=created.income.id, user_id=user.id)
        assert [t.id for t in await user_transactions(db, user.id)] == [expense.id]

    async def test_other_users_income_is_not_found(self, db, user, other_user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        with pytest.raises(NotFoundError):
            await crud_income.delete_income(db, transaction_id=created.income.id, user_id=other_user.id)
        assert len(await user_transactions(db, user.id)) == 4


class TestReconcile:

    async def test_heals_only_broken_incomes(self, db, user):
        healthy = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        broken = await crud_income.create_income(db, user_id=user.id, obj_in=income_in(description="Bonus"))
        await db.delete(broken.distributed["needs"])
        broken.income.distributed_needs_id = None
        await db.flush()

        healed = await crud_income.reconcile_income_distributions(db, user_id=user.id)

        assert healed == 1
        assert broken.income.distributed_needs_id is not None
        assert broken.income.distribution_status == DistributionStatus.distributed
        assert healthy.income.distribution_status == DistributionStatus.distributed
        assert await crud_income.reconcile_income_distributions(db, user_id=user.id) == 0
        assert len(await user_transactions(db, user.id)) == 8

    async def test_relinks_surviving_distribution(self, db, user):
        created = await crud_income.create_income(db, user_id=user.id, obj_in=income_in())
        # Ссылка потеряна, но статус остался прежним
        created.income.distributed_savings_id = None
        await db.flush()

        assert await crud_income.reconcile_income_distributions(db, user_id=user.id) == 1
        assert created.income.distributed_savings_id == created.distributed["savings"].id
        assert len(await user_transactions(db, user.id)) == 4
