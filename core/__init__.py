"""Framework-free building blocks: liveness challenges, attendance rules, camera access."""
