"""
Constants for the shellcue prediction engine.
"""
from pathlib import Path
import os

# Application information
APP_NAME = "shellcue"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = "Adaptive command-line prediction engine that learns from your shell history"

# Paths
CONFIG_DIR = Path(os.path.expanduser("~/.config/shellcue"))
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_DIR = CONFIG_DIR / "logs"
DATA_DIR = Path(os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))) / "shellcue"
DATABASE_FILE = DATA_DIR / "learned-data.db"

# Logging
LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra[component]} | {message}"
LOG_ROTATION = "10 MB"
LOG_RETENTION = "10 days"

# Learning limits
DEFAULT_HISTORY_SIZE = 100
DEFAULT_MAX_COMMANDS = 500
DEFAULT_MAX_ARGUMENTS_PER_COMMAND = 100
DEFAULT_DECAY_DAYS = 30.0

# Scoring
FREQUENCY_WEIGHT = 0.6
RECENCY_WEIGHT = 0.4
WORKFLOW_BOOST = 0.6          # Guarantees a continuation token scores above 0.5
RECENT_ARGUMENT_BOOST = 0.15
CONTEXT_SUGGESTION_SCORE = 0.85
RECENT_CONTEXT_WINDOW = 5     # Commands considered by the context analyzer
RECENT_ARGUMENT_WINDOW = 3    # Commands whose arguments get a recency boost

# Persistence
AUTO_SAVE_INTERVAL = 300.0    # seconds
FLUSH_AFTER_COMMANDS = 20
MAX_HISTORY_ROWS = 1000
HISTORY_RETENTION_DAYS = 90
BUSY_TIMEOUT_MS = 5000
MAX_WRITE_RETRIES = 3
SCHEMA_VERSION = 1

# Flags known to take a following value, for every command
DEFAULT_VALUE_FLAGS = [
    "-m", "--message",              # git commit, python -m
    "--branch",
    "--configuration", "--framework",
    "--output", "--project", "--file",
    "--namespace",
    "--tag",
    "--name",
]

# Short flags that take a value only for one command, keyed by verb or
# "verb subcommand"
DEFAULT_SCOPED_VALUE_FLAGS = {
    "git checkout": ["-b", "-B"],
    "git switch": ["-c", "-C"],
    "git clone": ["-b"],
    "dotnet": ["-c", "-f", "-o", "-p"],
    "kubectl": ["-n", "-o", "-f", "-l", "-c"],
    "docker build": ["-t", "-f"],
    "docker run": ["-e", "-p", "-v", "-w"],
    "docker exec": ["-e", "-u", "-w"],
    "helm": ["-n", "-f"],
}

# Tools whose first positional argument is a subcommand
MULTI_PART_COMMANDS = [
    "git", "docker", "kubectl", "npm", "dotnet", "cargo",
    "gh", "az", "func", "scoop", "pip", "poetry", "uv",
]

# Commands whose positional argument is a directory
NAVIGATION_VERBS = ["cd", "pushd", "chdir", "Set-Location", "sl"]

# Directories hidden from jump suggestions unless typed explicitly
DIRECTORY_BLOCKLIST = [
    ".codeium", ".claude", ".dotnet", ".nuget", ".git", ".vs", ".vscode", ".idea",
    "node_modules", "bin", "obj", "target", "__pycache__", ".pytest_cache",
]

# Directory frecency weights
DIRECTORY_FREQUENCY_WEIGHT = 0.5
DIRECTORY_RECENCY_WEIGHT = 0.3
DIRECTORY_DISTANCE_WEIGHT = 0.2

# Directory levels below the current directory searched for a jump query
DIRECTORY_MAX_DEPTH = 3
# Stop the filesystem walk after this many directories
DIRECTORY_SCAN_LIMIT = 5000

# Well-known command follow-ups, keyed by command key
KNOWN_SEQUENCES = {
    "git add": ["git commit", "git status"],
    "git commit": ["git push", "git log", "git status"],
    "git checkout": ["git pull", "git status"],
    "git switch": ["git pull", "git status"],
    "git pull": ["git status", "git log"],
    "git fetch": ["git status", "git merge", "git rebase"],
    "git stash": ["git status", "git stash pop"],
    "git clone": ["cd"],
    "docker build": ["docker run", "docker push", "docker images"],
    "docker ps": ["docker logs", "docker exec", "docker stop"],
    "docker pull": ["docker run"],
    "kubectl apply": ["kubectl get", "kubectl describe", "kubectl logs"],
    "kubectl get": ["kubectl describe", "kubectl logs"],
    "npm install": ["npm run", "npm start", "npm test"],
    "npm run": ["npm test"],
    "cargo build": ["cargo run", "cargo test"],
    "cargo test": ["cargo build", "cargo run"],
    "dotnet build": ["dotnet test", "dotnet run"],
    "dotnet restore": ["dotnet build"],
    "mkdir": ["cd"],
    "cd": ["ls", "git status"],
    "ls": ["cd"],
}

# Tokens worth boosting once a command has just run, keyed by command key
FOLLOW_UP_TOKENS = {
    "git add": ["commit", "-m", "--message", "status"],
    "git commit": ["push", "status", "log"],
    "git checkout": ["pull"],
    "docker build": ["run", "-d", "-p", "push"],
    "docker ps": ["logs", "exec", "stop"],
    "npm install": ["run", "start", "test"],
}

# Tokens boosted after any "<tool> build"
BUILD_FOLLOW_UP_TOKENS = ["test", "run"]
