from datetime import datetime
import platform

def start_audit(subject: str) -> list[str]:
    return [f"Task start: {datetime.now().isoformat()}",
            f"Peak list: {subject}",
            f"Platform: {platform.platform()}" ]

def log_step(audit: list[str], msg: str):
    audit.append(msg)

def warnings_in(audit: list[str]) -> list[str]:
    return [line for line in audit if line.startswith("WARNING: ")]

def log_warning(audit: list[str], msg: str):
    log_step(audit, f"WARNING: {msg}")
