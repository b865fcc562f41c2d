"""Selection of the runnable subset of a project's tests."""

from collections.abc import Collection, Sequence

from greenrun_batch.models.entities import Test

TAG_PREFIX = "tag:"
PAGE_PREFIX = "/"


def filter_tests(
    tests: Sequence[Test],
    test_ids: Collection[str] | None = None,
    expression: str | None = None,
) -> Sequence[Test]:
    """Select active tests by explicit IDs or a filter expression.

    Args:
        tests: Tests of one project, in catalogue order
        test_ids: Explicit test IDs; when non-empty, ``expression`` is ignored
        expression: ``tag:<name>`` for an exact tag (case-insensitive),
            ``/<path>`` for a substring of any page URL, anything else for
            a case-insensitive substring of the test name

    Returns:
        Matching active tests in their original order, possibly empty

    """
    active = [test for test in tests if test.status == "active"]

    if test_ids:
        wanted = set(test_ids)
        return [test for test in active if test.id in wanted]

    if not expression:
        return active

    if expression.startswith(TAG_PREFIX):
        tag = expression[len(TAG_PREFIX) :].lower()
        return [
            test for test in active if any(t.lower() == tag for t in test.tags)
        ]

    if expression.startswith(PAGE_PREFIX):
        return [
            test
            for test in active
            if any(expression in page.url for page in test.pages)
        ]

    needle = expression.lower()
    return [test for test in active if needle in test.name.lower()]
