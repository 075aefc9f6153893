from app.core.exceptions import AppError, PlacementRejectedError, ResourceNotFoundError, StaleSnapshotError


def test_placement_rejected_error_structure():
    err = PlacementRejectedError("PriorityConflict", "Physics already occupies this slot.")
    assert err.status_code == 409
    assert err.message == "Physics already occupies this slot."
    assert err.details == {"kind": "PriorityConflict"}
    assert isinstance(err, AppError)


def test_validation_rejections_are_unprocessable():
    err = PlacementRejectedError("ValidationError", "Unknown subject x.")
    assert err.status_code == 422
    assert err.kind == "ValidationError"


def test_stale_snapshot_error():
    err = StaleSnapshotError(3)
    assert err.status_code == 409
    assert err.details == {"kind": "StaleSnapshot", "attempts": 3}


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.details == {}
    assert ResourceNotFoundError("Subject", "s1").status_code == 404
