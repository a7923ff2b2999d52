import pytest

from colmena import errors


def test_child_failure_from_returncode():
    err = errors.from_returncode(1)
    assert isinstance(err, errors.ChildFailure)
    assert err.exit_code == 1
    assert str(err) == "Child process exited with error code: 1"


def test_child_killed_from_negative_returncode():
    err = errors.from_returncode(-9)
    assert isinstance(err, errors.ChildKilled)
    assert err.signal == 9
    assert str(err) == "Child process was killed by signal 9"


def test_unknown_wraps_message():
    err = errors.unknown(RuntimeError("channel closed"))
    assert isinstance(err, errors.UnknownError)
    assert err.message == "channel closed"
    assert str(err) == "Unknown error: channel closed"


@pytest.mark.parametrize(
    "cls, text",
    [
        (errors.Unsupported, "This operation is not supported"),
        (errors.InvalidStorePath, "Invalid Nix store path"),
        (errors.AttributeEvaluationError, "Some attributes failed to evaluate"),
        (errors.InvalidProfile, "Invalid NixOS system profile"),
        (errors.FailedToGetCurrentProfile, "Could not determine current profile"),
        (errors.NoFlakesSupport, "Current Nix version does not support Flakes"),
        (errors.NoTargetHost, "Don't know how to connect to the node"),
        (errors.EmptyNodeName, "Node name cannot be empty"),
        (errors.EmptyFilterRule, "Filter rule cannot be empty"),
        (errors.DeploymentAlreadyExecuted, "Deployment already executed"),
    ],
)
def test_fixed_messages(cls, text):
    err = cls()
    assert str(err) == text
    assert isinstance(err, errors.ColmenaError)


def test_bad_output_message():
    err = errors.BadOutput("garbage")
    assert err.output == "garbage"
    assert str(err) == "Nix returned invalid response: garbage"


def test_io_error_message():
    cause = OSError("disk gone")
    err = errors.IoError(cause)
    assert err.error is cause
    assert str(err) == "I/O Error: disk gone"


def test_key_error_message():
    err = errors.NixKeyError("secret-file", "missing source")
    assert str(err) == 'Error processing key "secret-file": missing source'


def test_validation_error_is_caught_as_base():
    err = errors.ValidationError(["bad port"])
    assert err.errors == ["bad port"]
    assert str(err) == "Validation error"
    with pytest.raises(errors.ColmenaError, match="^Validation error$"):
        raise err