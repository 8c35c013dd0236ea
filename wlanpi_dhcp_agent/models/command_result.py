from typing import Optional


class CommandResult:
    """Returned by DHCPClient when a dhclient invocation finishes"""

    def __init__(self, stdout: str, stderr: str, return_code: Optional[int]):
        self.stdout = stdout
        self.stderr = stderr
        self.return_code = return_code
        self.success = self.return_code == 0

    @property
    def error(self) -> str:
        """Best available failure text: stderr, else the last stdout line."""
        if self.stderr.strip():
            return self.stderr.strip()
        lines = [line for line in self.stdout.splitlines() if line.strip()]
        return lines[-1] if lines else f"exit status {self.return_code}"

    def __repr__(self):
        return f"CommandResult(return_code={self.return_code}, success={self.success})"
