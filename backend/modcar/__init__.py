"""ModCar Console: painel SaaS de admin e parceiros do marketplace ModCar."""
