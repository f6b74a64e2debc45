from cwlbuilder.runner.local import LocalBackend
from cwlbuilder.runner.slurm import SlurmBackend

backend_classes = {
    "local": LocalBackend,
    "slurm": SlurmBackend,
}
