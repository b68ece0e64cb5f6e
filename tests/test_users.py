import pytest
from pydantic import ValidationError as PydanticValidationError

from incomesplit.crud import crud_user
from incomesplit.schemas.user import BudgetPreferences, User


async def test_new_user_defaults(db, user):
    assert user.percentages() == {"needs": 50, "wants": 30, "savings": 20}
    assert user.preferred_currency == "INR"
    assert user.setup_complete is False

    payload = User.model_validate(user)
    assert payload.budget_preferences.needs.percentage == 50


async def test_google_sign_in_creates_then_updates(db):
    created = await crud_user.get_or_create_or_update_user_from_google(
        db, google_id="google-42", email="meera@example.com", display_name="Meera"
    )
    assert created.id is not None

    updated = await crud_user.get_or_create_or_update_user_from_google(
        db,
        google_id="google-42",
        email="meera@example.com",
        display_name="Meera K",
        profile_picture="https://example.com/meera.png",
    )

    assert updated.id == created.id
    assert updated.display_name == "Meera K"
    assert updated.profile_picture == "https://example.com/meera.png"


async def test_update_budget_preferences(db, user):
    prefs = BudgetPreferences(needs={"percentage": 40}, wants={"percentage": 40}, savings={"percentage": 20})
    await crud_user.update_budget_preferences(db, db_obj=user, obj_in=prefs)

    reloaded = await crud_user.get_user(db, user_id=user.id)
    assert reloaded.budget_preferences == {
        "needs": {"percentage": 40},
        "wants": {"percentage": 40},
        "savings": {"percentage": 20},
    }


def test_preferences_must_sum_to_hundred():
    with pytest.raises(PydanticValidationError):
        BudgetPreferences(needs={"percentage": 40}, wants={"percentage": 40}, savings={"percentage": 10})


async def test_preferences_differ_is_exact(user):
    assert crud_user.preferences_differ(user, {"needs": 50, "wants": 30, "savings": 20}) is False
    assert crud_user.preferences_differ(user, {"needs": 50, "wants": 30.001, "savings": 19.999}) is True
