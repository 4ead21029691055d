"""FarmVet: API de checkout et d'orchestration des paiements (Paymob, PayPal, paiement à la livraison)."""
