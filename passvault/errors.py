"""Every failure the store can report to the user."""

from typing import Optional


class PassError(Exception):
    """Base class of the errors printed to the user by the cli."""

    message = "Unknown error"

    def __str__(self: "PassError") -> str:
        return self.message.format(*self.args)


class UserAbort(PassError):
    message = "User aborted"


class SecretsDontMatch(PassError):
    message = "The entered secrets do not match."


class SneakyPath(PassError):
    message = "Sneaky path '{}'"


class NotInStore(PassError):
    message = "'{}' is not in the password store"


class PathDoesntExist(PassError):
    message = "Path '{}' does not exist"


class PathIsDir(PassError):
    message = "'{}' is a directory"


class StoreDoesntExist(PassError):
    message = (
        "Store does not exist\n"
        "You must run `passvault init gpg-id` before you can use the password store"
    )


class NoGpgIdFile(PassError):
    message = "No `.gpg-id` was found in '{}'"


class NoPrivateKeyFound(PassError):
    message = "No private key found"


class NoSigningKeyFound(PassError):
    message = "No signing key found"


class NoMatchesFound(PassError):
    def __init__(
        self: "NoMatchesFound", target: str, suggestion: Optional[str] = None
    ) -> None:
        super().__init__(target)
        self.target = target
        self.suggestion = suggestion

    def __str__(self: "NoMatchesFound") -> str:
        msg = f"No matches found for '{self.target}'"
        if self.suggestion:
            msg += f"\nDid you mean '{self.suggestion}'?"
        return msg


class HashMismatch(PassError):
    message = "Clipboard contents changed since they were copied"


class MissingSignature(PassError):
    message = "Signature for '{}' does not exist"


class BadSignature(PassError):
    message = "Signature for '{}' does not match"


class SourceIsDestination(PassError):
    message = "Source is destination"


class ContentsUnchanged(PassError):
    message = "Contents unchanged"


class ClipFailed(PassError):
    message = "Failed to set contents of clipboard"


class PasteFailed(PassError):
    message = "Failed to get contents of clipboard"


class StdoutNotTty(PassError):
    message = "stdout was not a tty"


class InvalidConfiguration(PassError):
    message = "Invalid value for {}: '{}'"


class LineDoesntExist(PassError):
    message = "'{}' has no line {}"


class RootGpgIdRemoval(PassError):
    message = "The `.gpg-id` of the store root cannot be removed"


class InvalidPattern(PassError):
    message = "Invalid pattern '{}': {}"


class EntryNotText(PassError):
    message = "'{}' does not hold UTF-8 text"


class NoGitIdentity(PassError):
    message = "No git identity set, configure user.name and user.email"
