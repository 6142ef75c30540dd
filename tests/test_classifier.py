import pytest

from hybrid_address_search.classifier import InputClassifier
from hybrid_address_search.config import PostalRange
from hybrid_address_search.models import InputCategory


@pytest.fixture
def classifier():
    return InputClassifier()


@pytest.mark.parametrize("code", [f"{n:05d}" for n in range(0, 100000, 997)] + ["00000", "99999"])
def test_five_digits_is_postalcode_only(classifier, code):
    result = classifier.classify(code)

    assert result.category is InputCategory.POSTALCODE_ONLY
    assert result.postal_code == code
    assert result.in_region is not None


@pytest.mark.parametrize(
    "query, category, postal_code",
    [
        ("80331", InputCategory.POSTALCODE_ONLY, "80331"),
        ("  80331  ", InputCategory.POSTALCODE_ONLY, "80331"),
        ("Hauptstraße 12, 12345 Berlin", InputCategory.WITH_POSTALCODE, "12345"),
        ("80331 München", InputCategory.WITH_POSTALCODE, "80331"),
        ("80331 90402", InputCategory.WITH_POSTALCODE, "80331"),
        ("Hauptstraße 12", InputCategory.STREET_WITH_NUMBER, None),
        ("A-Weg 8", InputCategory.STREET_WITH_NUMBER, None),
        ("123456 Test", InputCategory.STREET_WITH_NUMBER, None),
        ("Bad Tölz", InputCategory.STREET_OR_CITY, None),
        ("St.-Anna-Platz", InputCategory.STREET_OR_CITY, None),
        ("Äußere Wiener Straße", InputCategory.STREET_OR_CITY, None),
        ("123", InputCategory.MIXED, None),
        ("Müller & Söhne", InputCategory.MIXED, None),
        ("!!!", InputCategory.MIXED, None),
        ("", InputCategory.MIXED, None),
    ],
)
def test_classify_categories(classifier, query, category, postal_code):
    result = classifier.classify(query)

    assert result.category is category
    assert result.postal_code == postal_code
    assert result.value == query.strip()


def test_region_flag_only_defined_with_postal_code(classifier):
    assert classifier.classify("Hauptstraße 12").in_region is None
    assert classifier.classify("Bad Tölz").in_region is None
    assert classifier.classify("80331").in_region is True
    assert classifier.classify("Hauptstraße 12, 12345 Berlin").in_region is False


def test_first_postal_code_wins(classifier):
    result = classifier.classify("12345 Berlin oder 80331 München")

    assert result.postal_code == "12345"
    assert result.in_region is False


@pytest.mark.parametrize(
    "code, expected",
    [
        ("80000", True),
        ("87999", True),
        ("88000", False),
        ("89999", False),
        ("90000", True),
        ("97999", True),
        ("98000", False),
        ("12345", False),
        ("abc", False),
        ("8o331", False),
        ("", False),
    ],
)
def test_is_in_region_default_ranges(classifier, code, expected):
    assert classifier.is_in_region(code) is expected


def test_is_in_region_custom_ranges():
    classifier = InputClassifier([PostalRange(min=10000, max=14999)])

    assert classifier.is_in_region("12345") is True
    assert classifier.is_in_region("80331") is False
    assert classifier.classify("80331").in_region is False


def test_build_query_keeps_raw_and_trimmed(classifier):
    query = classifier.build_query("  Marienplatz 1, 80331 München ")

    assert query.raw == "  Marienplatz 1, 80331 München "
    assert query.text == "Marienplatz 1, 80331 München"
    assert query.normalized == "marienplatz 1, 80331 münchen"
    assert query.postal_code == "80331"
