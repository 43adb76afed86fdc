"""
Pool de travail borné pour les lectures de sources brutes

Les tâches d'un lot partagent un délai global (et non un délai par tâche).
Les résultats sont rendus dans l'ordre de soumission ; les tâches non
terminées à l'échéance sont omises et signalées, sans être interrompues.
Un thread encore actif retient la sortie de l'interpréteur jusqu'à sa fin :
le délai du lot doit donc couvrir les délais propres à chaque tâche.
"""

import concurrent.futures
import time
from typing import Any, Callable, List, Optional, Sequence, Tuple

from .issues import IssueLedger, PHASE_COLLECTION

Task = Tuple[str, Callable[[], Any]]


def run_batch(tasks: Sequence[Task], max_workers: int, timeout: float,
              ledger: Optional[IssueLedger] = None, phase: str = PHASE_COLLECTION,
              logger=None) -> List[Optional[Any]]:
    """
    Exécute un lot de tâches indépendantes avec une concurrence bornée

    Args:
        tasks: Couples (nom, fonction sans argument)
        max_workers: Nombre maximal de tâches simultanées
        timeout: Délai global du lot, en secondes
        ledger: Registre des problèmes (échecs et dépassements)
        phase: Phase utilisée pour les problèmes signalés
        logger: Logger optionnel

    Returns:
        list: Résultat de chaque tâche à son index de soumission,
        None pour une tâche en échec ou non terminée
    """
    results: List[Optional[Any]] = [None] * len(tasks)
    if not tasks:
        return results

    start_time = time.time()
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=max(1, int(max_workers)),
        thread_name_prefix='diagagent'
    )
    futures = {}

    try:
        for index, (name, func) in enumerate(tasks):
            futures[executor.submit(func)] = (index, name)

        done, not_done = concurrent.futures.wait(futures, timeout=timeout)

        for future in done:
            index, name = futures[future]
            try:
                results[index] = future.result()
            except Exception as e:
                if ledger is not None:
                    ledger.warning(phase, f"Tâche '{name}' en échec: {e}")

        for future in not_done:
            index, name = futures[future]
            if ledger is not None:
                ledger.warning(phase, f"Tâche '{name}' non terminée après {timeout}s")

        if logger:
            logger.debug(f"Lot de {len(tasks)} tâche(s) traité en {time.time() - start_time:.2f}s "
                         f"({len(done)} terminée(s))")

    finally:
        # Les tâches en attente sont annulées ; celles en cours ne bloquent pas
        # le retour, mais restent jointes à la sortie de l'interpréteur
        for future in futures:
            future.cancel()
        executor.shutdown(wait=False)

    return results
