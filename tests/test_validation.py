"""Validation behaviour of @validated structures."""

from dataclasses import dataclass

import pytest

from declara import ValidationError, ValidationResult
from declara.core.struct import error_type

from tests.sample_models import (
    Account,
    Address,
    Chain,
    Company,
    Contact,
    Customer,
    CustomerWithOptionalAddress,
    Email,
    Employee,
    GenericItem,
    Item,
    Labels,
    MultiValidatorItem,
    Order,
    OrderWithLenCheck,
    Scores,
    UserProfile,
    Wrapper,
)


def valid_address():
    return Address(street="1 Main St", city="Springfield", zip_code="12345")


class TestValidStructures:
    """Valid values produce an ok result holding the object."""

    def test_valid_item(self):
        item = Item(name="widget", quantity=3)
        result = item.validate()
        assert result == ValidationResult(valid=True, value=item)
        assert result
        assert result.unwrap() is item

    def test_valid_nested(self):
        customer = Customer(name="Ann", address=valid_address())
        assert customer.validate().valid


class TestCompleteness:
    """Every failing validator is reported, nothing short-circuits."""

    def test_all_fields_reported(self):
        error = Item(name="", quantity=0).validate().error
        assert error.fields_with_errors() == ["name", "quantity"]
        assert error.name().non_empty_validation() is not None
        assert error.quantity().range_validation().actual == 0

    def test_passing_field_is_empty(self):
        error = Item(name="ok", quantity=0).validate().error
        assert error.name().is_empty()
        assert error.name().non_empty_validation() is None

    def test_all_validators_on_one_field_in_order(self):
        error = MultiValidatorItem(code="x!").validate().error
        failures = error.code().all()
        assert [type(f).validator_name() for f in failures] == [
            "LenValidation",
            "AlphanumericValidation",
            "CaseValidation",
        ]

    def test_failure_keeps_configuration_and_value(self):
        error = Item(name="ok", quantity=500).validate().error
        failure = error.quantity().range_validation()
        assert (failure.min, failure.max, failure.actual) == (1, 100, 500)

    def test_captured_value_is_a_copy(self):
        tags = []
        error = OrderWithLenCheck(tags=tags).validate().error
        tags.append("later")
        assert error.tags().len_validation().actual == []

    def test_merged_annotations(self):
        error = UserProfile(
            username="Bob", email="bob@example.com", password="secret-pw", confirm="secret-pw"
        ).validate().error
        assert error.fields_with_errors() == ["username"]
        assert error.username().case_validation() is not None
        assert error.username().len_validation() is None


class TestOptionalFields:
    """None skips unwrapped validators on optional fields."""

    def test_none_skips_field(self):
        order = Order(id="o-1", scores=[], note=None)
        assert order.validate().valid

    def test_present_value_is_validated(self):
        error = Order(id="o-1", scores=[], note="much too long").validate().error
        assert error.note().len_validation().actual == "much too long"

    def test_full_type_validator_sees_none(self):
        error = Contact(phone=None).validate().error
        assert error.phone().required_validation() is not None
        assert error.phone().phone_number_validation() is None

    def test_full_type_and_unwrapped_validators(self):
        assert Contact(phone="+16502530000").validate().valid
        error = Contact(phone="12345").validate().error
        assert error.phone().required_validation() is None
        assert error.phone().phone_number_validation().actual == "12345"

    def test_optional_age(self):
        base = dict(username="bob", email="bob@example.com", password="secret-pw", confirm="secret-pw")
        assert UserProfile(**base).validate().valid
        assert UserProfile(**base, age=40).validate().valid
        error = UserProfile(**base, age=5).validate().error
        assert error.age().range_validation().actual == 5


class TestCollections:
    """each(...) validators report failing elements by index."""

    def test_failing_index_only(self):
        error = Order(id="o-1", scores=[50.0, 150.0, 75.0]).validate().error
        elements = error.scores()
        assert [index for index, _ in elements] == [1]
        assert elements[0][1].range_validation().actual == 150.0

    def test_indices_ascending(self):
        error = Order(id="o-1", scores=[-1.0, 5.0, 101.0, 200.0]).validate().error
        assert [index for index, _ in error.scores()] == [0, 2, 3]

    def test_empty_sequence(self):
        assert Order(id="o-1", scores=[]).validate().valid

    def test_collection_and_element_validators(self):
        error = OrderWithLenCheck(tags=["a", " ", "b", "c"]).validate().error
        tags = error.tags()
        assert tags.len_validation().actual == ["a", " ", "b", "c"]
        assert [index for index, _ in tags.element_errors()] == [1]
        assert tags.element_errors()[0][1].non_empty_validation().actual == " "

    def test_element_only_failure(self):
        error = OrderWithLenCheck(tags=["a", ""]).validate().error
        assert error.tags().len_validation() is None
        assert error.tags().has_errors()

    def test_element_only_failure_is_truthy(self):
        tags = OrderWithLenCheck(tags=["a", ""]).validate().error.tags()
        assert len(tags) == 0
        assert bool(tags) is tags.has_errors() is True
        assert "elements=[1]" in repr(tags)

    def test_passing_field_is_falsy(self):
        error = Item(name="ok", quantity=0).validate().error
        assert not error.name()
        assert error.quantity()
        assert error

    def test_none_elements_skipped(self):
        assert Labels(labels=["a", None, "b"]).validate().valid
        error = Labels(labels=[None, ""]).validate().error
        assert [index for index, _ in error.labels()] == [1]


class TestNesting:
    """nested fields recurse into the inner structure."""

    def test_inner_aggregate(self):
        address = Address(street="", city="Springfield", zip_code="1234")
        error = Customer(name="Ann", address=address).validate().error
        inner = error.address()
        assert inner.fields_with_errors() == ["street", "zip_code"]
        assert inner.street().non_empty_validation() is not None
        assert inner.zip_code().pattern_validation().actual == "1234"

    def test_inner_valid_is_none(self):
        error = Customer(name="", address=valid_address()).validate().error
        assert error.address() is None

    def test_nested_errors_match_direct_validation(self):
        address = Address(street="", city="", zip_code="x")
        direct = address.validate().error
        via_customer = Customer(name="Ann", address=address).validate().error.address()
        assert via_customer == direct

    def test_optional_nested_none(self):
        assert CustomerWithOptionalAddress(name="Ann").validate().valid

    def test_optional_nested_present(self):
        bad = Address(street="", city="c", zip_code="12345")
        error = CustomerWithOptionalAddress(name="Ann", address=bad).validate().error
        assert error.address().fields_with_errors() == ["street"]

    def test_nested_sequence(self):
        offices = [valid_address(), Address(street="x", city="", zip_code="12345")]
        error = Company(name="Acme", offices=offices).validate().error
        assert [index for index, _ in error.offices()] == [1]
        assert error.offices()[0][1].city().non_empty_validation() is not None

    def test_nested_sequence_skips_none(self):
        company = Company(name="Acme", offices=[], branches=[None, valid_address()])
        assert company.validate().valid

    def test_message_paths(self):
        offices = [Address(street="", city="c", zip_code="12345")]
        messages = Company(name="", offices=offices).validate().error.messages()
        assert messages == {
            "name": ["value must not be empty"],
            "offices[0].street": ["value must not be empty"],
        }


class TestNewtype:
    """newtype structures and newtype-nested fields."""

    def test_newtype_accessors(self):
        error = Email(value="not-an-email").validate().error
        assert error.email_validation().actual == "not-an-email"
        assert error.len_validation() is None
        assert [type(f).validator_name() for f in error.all()] == ["EmailValidation"]

    def test_transparent_field_access(self):
        employee = Employee(name="Ann", email=Email(value="nope"))
        error = employee.validate().error
        assert error.email().email_validation().actual == "nope"
        assert len(error.email().all()) == 1

    def test_passing_newtype_field_is_empty(self):
        error = Employee(name="", email=Email(value="ann@example.com")).validate().error
        assert error.email().all() == []
        assert error.email().email_validation() is None
        assert error.email().is_empty()
        assert error.fields_with_errors() == ["name"]

    def test_newtype_message_path(self):
        error = Employee(name="Ann", email=Email(value="nope")).validate().error
        assert list(error.messages()) == ["email"]

    def test_newtype_field_truthiness(self):
        passing = Employee(name="", email=Email(value="ann@example.com")).validate().error
        assert not passing.email()
        assert passing.email().__wrapped__ is None
        failing = Employee(name="Ann", email=Email(value="nope")).validate().error
        assert failing.email()
        assert failing.email().__wrapped__.value().email_validation() is not None

    def test_element_only_newtype_all(self):
        error = Scores(values=[1, 20, 3, -1]).validate().error
        assert [f.actual for f in error.all()] == [20, -1]
        assert [index for index, _ in error.element_errors()] == [1, 3]

    def test_self_wrapping_newtype(self):
        assert Chain(next=Chain(next=Chain())).validate().valid
        errors = error_type(Chain)()
        assert errors.next() is None
        with pytest.raises(AttributeError):
            errors.email_validation


class TestTryNew:
    """try_new constructs and validates in one step."""

    def test_round_trip(self):
        result = Account.try_new(handle="@ann", balance=10.0)
        assert result.valid
        assert result.value == Account(handle="@ann", balance=10.0)

    def test_failure_has_no_value(self):
        result = Account.try_new(handle="ann", balance=-1.0)
        assert not result.valid
        assert result.value is None
        assert result.error.fields_with_errors() == ["handle", "balance"]
        assert result.error.handle().prefix_validation() is not None

    def test_custom_error_name(self):
        result = Account.try_new(handle="a", balance=0.0)
        assert type(result.error) is error_type(Account)
        assert type(result.error).__name__ == "AccountErrors"

    def test_skipped_field_is_not_validated(self):
        assert "internal" not in error_type(Account).FIELDS

    def test_newtype_try_new(self):
        assert Email.try_new("ann@example.com").value == Email("ann@example.com")
        assert Email.try_new("ann").error.email_validation() is not None

    def test_structures_without_option(self):
        assert not hasattr(Item, "try_new")


class TestIdempotence:
    """Validating twice gives equal results."""

    @pytest.mark.parametrize(
        "obj",
        [
            Item(name="", quantity=0),
            Order(id="", scores=[1.0, 500.0]),
            Customer(name="", address=Address(street="", city="", zip_code="")),
            Employee(name="", email=Email(value="x")),
            Item(name="ok", quantity=1),
        ],
        ids=["item", "order", "customer", "employee", "valid"],
    )
    def test_repeat(self, obj):
        assert obj.validate() == obj.validate()


class TestGenericValidators:
    """Type-inferred validators are bound to the field type."""

    def test_bounds_coerced_to_field_type(self):
        error = GenericItem(price=1500.0, stock=1).validate().error
        failure = error.price().range_validation()
        assert isinstance(failure.max, float)
        assert type(failure).value_type is float

    def test_int_accepted_for_float(self):
        assert GenericItem(price=10, stock=0).validate().valid

    def test_generic_class_without_base(self):
        error = GenericItem(price=1.0, stock=-1).validate().error
        failure = error.stock().at_least()
        assert failure.limit == 0


class TestFieldReferences:
    """Bare field names in arguments read the structure's values."""

    def test_matching_fields(self):
        profile = UserProfile(
            username="bob", email="bob@example.com", password="secret-pw", confirm="secret-pw"
        )
        assert profile.validate().valid

    def test_mismatch(self):
        profile = UserProfile(
            username="bob", email="bob@example.com", password="secret-pw", confirm="other-pw"
        )
        failure = profile.validate().error.confirm().matches_validation()
        assert (failure.other, failure.actual) == ("secret-pw", "other-pw")


class TestResultHelpers:
    """ValidationResult and ValidationError."""

    def test_unwrap_raises(self):
        with pytest.raises(ValidationError) as info:
            Item(name="", quantity=5).validate().unwrap()
        assert info.value.first("name") == "value must not be empty"
        assert "name: value must not be empty" in str(info.value)

    def test_unwrap_err_on_success(self):
        with pytest.raises(ValueError):
            Item(name="a", quantity=5).validate().unwrap_err()

    def test_failed(self):
        result = Item(name="", quantity=5).validate()
        assert result.failed() and not result
        assert result.unwrap_err() is result.error

    def test_to_dict(self):
        error = Order(id="o", scores=[500.0]).validate().error
        assert error.to_dict() == {
            "scores": {
                "elements": [
                    {
                        "index": 0,
                        "errors": [
                            {
                                "validator": "RangeValidation",
                                "message": "500.0 is not within [0.0, 100.0]",
                                "value": 500.0,
                            }
                        ],
                    }
                ]
            }
        }

    def test_to_json(self):
        error = Item(name="", quantity=1).validate().error
        assert error.to_json() == (
            '{"name":{"errors":[{"validator":"NonEmptyValidation",'
            '"message":"value must not be empty","value":""}]}}'
        )


class TestPlainDataclass:
    """The decorator applies dataclass when needed."""

    def test_decorates_plain_class(self):
        from declara import check, validated

        @validated
        class Point:
            x: int = check("NonNegativeValidation::<_>")
            y: int = check("NonNegativeValidation::<_>")

        assert Point(1, 2).validate().valid
        assert Point(-1, 2).validate().error.fields_with_errors() == ["x"]

    def test_already_a_dataclass(self):
        from declara import check, validated

        @validated
        @dataclass(frozen=True)
        class Frozen:
            name: str = check("NonEmptyValidation")

        assert not Frozen("").validate().valid


class TestFieldNames:
    """Field names shared with newtype accessors stay usable on plain structures."""

    def test_inner_and_all_fields(self):
        error = Wrapper(inner="", all=[1, -2]).validate().error
        assert error.inner().non_empty_validation() is not None
        [(index, elements)] = error.all()
        assert index == 1
        assert elements.positive_validation().actual == -2

    def test_valid(self):
        assert Wrapper(inner="x", all=[1, 2]).validate().valid
