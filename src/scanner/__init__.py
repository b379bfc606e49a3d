from .page_scanner import PageScanner, ScanResult, Violation

__all__ = [
	"PageScanner",
	"ScanResult",
	"Violation",
]
